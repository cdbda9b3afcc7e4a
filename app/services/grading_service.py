"""
Quiz grading service
MCQ / True-False: primary selection against the option flagged correct
Short answer: case-insensitive, trimmed exact match
Descriptive: left for manual review, zero points here
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from app.models.question import QuestionType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GradingPolicy:
    """Quiz-level knobs the grader needs"""
    negative_marking: bool = False
    negative_mark_value: float = 0.0
    total_marks: float = 0.0
    passing_marks: float = 0.0


@dataclass
class GradingOutcome:
    graded_answers: List[Dict[str, Any]] = field(default_factory=list)
    marks_obtained: float = 0.0


@dataclass(frozen=True)
class ScoreSummary:
    marks_obtained: float
    percentage: float
    passed: bool


class GradingService:
    """
    Stateless grader for quiz submissions

    ``questions`` are answer-key entries (``id``, ``type``, ``options`` with
    ``is_correct`` flags, ``correct_answer``, ``points``). ``answers`` are
    plain dicts as submitted. Nothing in here raises on bad input: an entry
    that cannot be matched or read is an abstention worth zero, and a
    question answered more than once is graded on its first answer only.
    """

    def grade(
        self,
        questions: List[Dict[str, Any]],
        answers: List[Any],
        policy: GradingPolicy
    ) -> GradingOutcome:
        """
        Grade a complete answer set

        Args:
            questions: Answer-key entries for the attempt
            answers: Student answers, in submission order
            policy: Negative-marking and pass/fail settings

        Returns:
            GradingOutcome with per-answer results and the clamped total
        """
        by_id = {q.get("id"): q for q in questions if isinstance(q, dict)}

        graded = []
        total = 0.0
        seen = set()
        for answer in answers:
            entry = self._grade_answer(by_id, answer, policy, seen)
            total += entry["points_awarded"]
            graded.append(entry)

        # Floor at zero only; a raw sum above total_marks is kept as-is
        marks_obtained = max(0.0, total)

        logger.debug(f"Graded {len(graded)} answers: raw={total}, clamped={marks_obtained}")

        return GradingOutcome(graded_answers=graded, marks_obtained=marks_obtained)

    def summarize(self, marks_obtained: float, policy: GradingPolicy) -> ScoreSummary:
        """Percentage and pass/fail for a graded total"""
        if policy.total_marks > 0:
            percentage = round(marks_obtained / policy.total_marks * 100, 2)
        else:
            percentage = 0.0

        return ScoreSummary(
            marks_obtained=marks_obtained,
            percentage=percentage,
            passed=marks_obtained >= policy.passing_marks,
        )

    def _grade_answer(
        self,
        by_id: Dict[str, Dict[str, Any]],
        answer: Any,
        policy: GradingPolicy,
        seen: set
    ) -> Dict[str, Any]:
        if not isinstance(answer, dict):
            return self._entry(None, [], None, False, 0.0)

        question_id = answer.get("question_id")
        selected = self._selected_options(answer.get("selected_options"))
        text_answer = answer.get("text_answer")
        if not isinstance(text_answer, str):
            text_answer = None

        question = by_id.get(question_id) if isinstance(question_id, str) else None
        if question is None:
            return self._entry(question_id, selected, text_answer, False, 0.0)

        # Only the first answer to a question is graded; repeats earn nothing
        if question_id in seen:
            return self._entry(question_id, selected, text_answer, False, 0.0)
        seen.add(question_id)

        q_type = question.get("type")
        points = self._points(question)

        if q_type in QuestionType.CHOICE:
            is_correct = self._grade_choice(question, selected)
        elif q_type == QuestionType.SHORT_ANSWER:
            is_correct = self._grade_short_answer(question, text_answer)
        else:
            # Descriptive and unknown types wait for manual review
            return self._entry(question_id, selected, text_answer, False, 0.0)

        if is_correct:
            awarded = points
        elif q_type in QuestionType.CHOICE and policy.negative_marking and selected:
            awarded = -policy.negative_mark_value
        else:
            awarded = 0.0

        return self._entry(question_id, selected, text_answer, is_correct, awarded)

    def _grade_choice(self, question: Dict[str, Any], selected: List[str]) -> bool:
        """Only the first selection is compared"""
        if not selected:
            return False

        correct_id = self._correct_option_id(question)
        return correct_id is not None and selected[0] == correct_id

    def _grade_short_answer(self, question: Dict[str, Any], text_answer: Optional[str]) -> bool:
        canonical = question.get("correct_answer")
        if not isinstance(canonical, str) or text_answer is None:
            return False
        return text_answer.strip().lower() == canonical.strip().lower()

    @staticmethod
    def _correct_option_id(question: Dict[str, Any]) -> Optional[str]:
        for option in question.get("options") or []:
            if isinstance(option, dict) and option.get("is_correct"):
                return option.get("id")
        return None

    @staticmethod
    def _selected_options(raw: Any) -> List[str]:
        if not isinstance(raw, list):
            return []
        return [item for item in raw if isinstance(item, str)]

    @staticmethod
    def _points(question: Dict[str, Any]) -> float:
        try:
            return float(question.get("points", 0.0))
        except (TypeError, ValueError):
            return 0.0

    @staticmethod
    def _entry(question_id, selected, text_answer, is_correct, points_awarded) -> Dict[str, Any]:
        return {
            "question_id": question_id if isinstance(question_id, str) else None,
            "selected_options": selected,
            "text_answer": text_answer,
            "is_correct": is_correct,
            "points_awarded": float(points_awarded),
        }


# Global instance
grading_service = GradingService()


def grade(questions, answers, policy: GradingPolicy) -> GradingOutcome:
    """Module-level shortcut for ``grading_service.grade``"""
    return grading_service.grade(questions, answers, policy)
