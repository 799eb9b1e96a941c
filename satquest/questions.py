"""
Question source.

The question bank itself is static content. The engine only needs
question ids; answer checking happens in the caller through
``Question.is_correct``.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set, Union

import yaml

logger = logging.getLogger(__name__)

CATEGORIES = ("math", "reading", "writing")


@dataclass
class Question:
    id: str
    question: str
    options: List[str]
    correct_answer: int
    explanation: str = ""
    category: str = "math"
    difficulty: Optional[int] = None
    tags: List[str] = field(default_factory=list)

    def is_correct(self, answer_index: int) -> bool:
        return answer_index == self.correct_answer

    def to_dict(self, include_answer: bool = False) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "question": self.question,
            "options": list(self.options),
            "category": self.category,
            "difficulty": self.difficulty,
        }
        if include_answer:
            data["correct_answer"] = self.correct_answer
            data["explanation"] = self.explanation
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Question":
        options = [str(o) for o in data.get("options") or []]
        correct = int(data["correct_answer"])
        if not 0 <= correct < len(options):
            raise ValueError(
                f"Question {data.get('id')}: correct_answer {correct} is out of range"
            )
        category = data.get("category", "math")
        if category not in CATEGORIES:
            raise ValueError(f"Question {data.get('id')}: unknown category '{category}'")
        return cls(
            id=str(data["id"]),
            question=str(data["question"]),
            options=options,
            correct_answer=correct,
            explanation=str(data.get("explanation", "")),
            category=category,
            difficulty=data.get("difficulty"),
            tags=list(data.get("tags") or []),
        )


class QuestionBank:
    """Ordered, id-indexed collection of questions."""

    def __init__(self, questions: Iterable[Question] = ()):
        self._questions: List[Question] = []
        self._by_id: Dict[str, Question] = {}
        for question in questions:
            if question.id in self._by_id:
                raise ValueError(f"Duplicate question id: {question.id}")
            self._questions.append(question)
            self._by_id[question.id] = question

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "QuestionBank":
        """
        Load questions from a YAML file with a top-level ``questions`` list.

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If an entry is malformed
        """
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        entries = data.get("questions", []) if isinstance(data, dict) else data
        bank = cls(Question.from_dict(entry) for entry in entries)
        logger.info(f"Loaded {len(bank)} questions from {path}")
        return bank

    def __len__(self) -> int:
        return len(self._questions)

    def __contains__(self, question_id: object) -> bool:
        return question_id in self._by_id

    def all_questions(self) -> List[Question]:
        return list(self._questions)

    def ids(self) -> Set[str]:
        return set(self._by_id)

    def get(self, question_id: str) -> Optional[Question]:
        return self._by_id.get(question_id)

    def unanswered(self, answered_ids: Iterable[str]) -> List[Question]:
        """Questions not yet answered correctly, in bank order."""
        answered = set(answered_ids)
        return [q for q in self._questions if q.id not in answered]
