"""
Quiz Pool Selector
Draws the question set for each attempt and aggregates pool analytics.

A draw is seeded by (quiz source, student, attempt number): re-opening the
same attempt shows the same questions, the next attempt gets a new set.
"""
from collections import defaultdict
from dataclasses import dataclass, asdict
import logging
import random

from django.db.models import Q

from courses.models import Question, QuizPool
from ..models import AttemptCounter, QuestionDraw, QuizAttempt
from ..exceptions import NotFound, ConflictingUpdate
from .lookups import get_student, get_pool

logger = logging.getLogger(__name__)


@dataclass
class QuestionRef:
    question_id: str
    quiz_id: str
    contributed_by: str
    text: str
    options: list
    points: int

    def as_dict(self):
        return asdict(self)


def _rng_for(source, student, attempt_number):
    return random.Random(f"{source.id}:{student.id}:{attempt_number}")


class QuizPoolSelector:

    def __init__(self, clock):
        self.clock = clock

    def generate_attempt(self, student_id, pool_id):
        """Question draw for the student's next attempt on ``pool_id``."""
        student = get_student(student_id)
        pool = get_pool(pool_id)
        return self.draw_for_unit(student, pool.unit)

    def draw_for_unit(self, student, unit, attempt_number=None):
        source = unit.quiz_source()
        if source is None:
            raise NotFound('This unit has no quiz', unit_id=str(unit.id))

        if attempt_number is None:
            taken = AttemptCounter.objects.filter(student=student, unit=unit).values_list('attempts_taken', flat=True).first()
            attempt_number = (taken or 0) + 1

        existing = QuestionDraw.objects.filter(student=student, unit=unit, attempt_number=attempt_number).first()
        if existing is not None:
            if not existing.is_open:
                raise ConflictingUpdate('This attempt has already been submitted', attempt_number=attempt_number)
            return existing

        is_pool = isinstance(source, QuizPool)
        candidates = list(source.questions() if is_pool else source.questions.order_by('id'))
        if not candidates:
            raise NotFound('No questions are available for this quiz', unit_id=str(unit.id))

        size = min(source.questions_per_attempt, len(candidates)) if is_pool else len(candidates)
        chosen = _rng_for(source, student, attempt_number).sample(candidates, size)

        draw, created = QuestionDraw.objects.get_or_create(
            student=student,
            unit=unit,
            attempt_number=attempt_number,
            defaults={
                'quiz_pool': source if is_pool else None,
                'quiz': None if is_pool else source,
                'question_ids': [str(q.id) for q in chosen],
                'drawn_at': self.clock(),
            },
        )
        if created:
            logger.info(f"Drew {size} of {len(candidates)} questions for student {student.id} unit {unit.id} attempt {attempt_number}")
        return draw

    def questions_for(self, draw):
        """Questions of ``draw`` in the order they were shown."""
        by_id = {str(q.id): q for q in Question.objects.select_related('quiz').filter(id__in=draw.question_ids)}
        return [by_id[qid] for qid in draw.question_ids if qid in by_id]

    def question_refs(self, draw):
        return [
            QuestionRef(
                question_id=str(q.id),
                quiz_id=str(q.quiz_id),
                contributed_by=str(q.quiz.created_by_id) if q.quiz.created_by_id else '',
                text=q.text,
                options=list(q.options),
                points=q.points,
            )
            for q in self.questions_for(draw)
        ]

    def pool_attempts(self, pool):
        """Attempts drawn from the pool plus direct attempts on any of its quizzes, each once."""
        return QuizAttempt.objects.filter(
            Q(quiz_pool=pool) | Q(quiz__in=pool.quizzes.all())
        ).distinct()

    def pool_analytics(self, pool_id):
        pool = get_pool(pool_id)
        rows = list(self.pool_attempts(pool).values('id', 'passed', 'percentage', 'answers'))

        total = len(rows)
        passed = sum(1 for row in rows if row['passed'])
        average_score = sum(row['percentage'] for row in rows) / total if total else 0.0

        usage = defaultdict(lambda: {'times_used': 0, 'correct': 0, 'incorrect': 0})
        for row in rows:
            for answer in row['answers'] or []:
                stats = usage[answer['question_id']]
                stats['times_used'] += 1
                if answer.get('correct'):
                    stats['correct'] += 1
                else:
                    stats['incorrect'] += 1

        question_analytics = []
        for question in pool.questions().select_related('quiz'):
            stats = usage.get(str(question.id), {'times_used': 0, 'correct': 0, 'incorrect': 0})
            used = stats['times_used']
            question_analytics.append({
                'question_id': str(question.id),
                'quiz_id': str(question.quiz_id),
                'text': question.text,
                'times_used': used,
                'correct': stats['correct'],
                'incorrect': stats['incorrect'],
                'accuracy': round(stats['correct'] / used * 100, 2) if used else 0.0,
            })

        contributions = []
        for teacher in pool.contributors:
            quizzes = pool.quizzes.filter(created_by=teacher)
            contributions.append({
                'teacher_id': str(teacher.id),
                'teacher_name': teacher.full_name,
                'quizzes': quizzes.count(),
                'questions': Question.objects.filter(quiz__in=quizzes).count(),
            })

        return {
            'pool_id': str(pool.id),
            'unit_id': str(pool.unit_id),
            'total_questions': len(question_analytics),
            'total_attempts': total,
            'passed_attempts': passed,
            'failed_attempts': total - passed,
            'pass_rate': round(passed / total * 100, 2) if total else 0.0,
            'average_score': average_score,
            'question_analytics': question_analytics,
            'contributions': contributions,
        }
