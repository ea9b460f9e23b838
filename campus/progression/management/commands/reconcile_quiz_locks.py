"""
Django management command to reconcile quiz locks with attempt counters.
This command:
1. Finds students who used every allowed attempt on a unit without passing
   but whose quiz lock is open
2. Locks those quizzes through the quiz lock manager
3. Prints a summary of currently locked quizzes and security locks
"""
from django.apps import apps
from django.core.management.base import BaseCommand

from progression.models import AttemptCounter, QuizLock, SecurityLock, UnitProgress


class Command(BaseCommand):
    help = 'Lock quizzes whose attempt limit is exhausted and report current locks'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Report what would be locked without changing anything',
        )

    def handle(self, *args, **options):
        dry_run = options.get('dry_run', False)
        engine = apps.get_app_config('progression').engine

        self.stdout.write(self.style.SUCCESS('=' * 60))
        self.stdout.write(self.style.SUCCESS('Reconciling quiz locks'))
        self.stdout.write(self.style.SUCCESS('=' * 60))
        if dry_run:
            self.stdout.write(self.style.WARNING('DRY RUN MODE - No changes will be saved'))

        passed = set(
            UnitProgress.objects.filter(quiz_passed=True).values_list('progress__student_id', 'unit_id')
        )
        locks = {
            (lock.student_id, lock.unit_id): lock
            for lock in QuizLock.objects.all()
        }

        fixed = 0
        for counter in AttemptCounter.objects.select_related('unit', 'unit__course', 'student'):
            key = (counter.student_id, counter.unit_id)
            if key in passed:
                continue
            lock = locks.get(key)
            limit = engine.ledger.effective_limit(counter.unit.course, lock)
            if counter.attempts_taken < limit or (lock is not None and lock.is_locked):
                continue

            self.stdout.write(
                f'  {counter.student.email} / {counter.unit}: {counter.attempts_taken}/{limit} attempts, quiz open'
            )
            if not dry_run:
                engine.quiz_locks.lock(counter.student_id, counter.unit_id, QuizLock.REASON_ATTEMPT_LIMIT)
            fixed += 1

        if fixed:
            verb = 'Would lock' if dry_run else 'Locked'
            self.stdout.write(self.style.SUCCESS(f'  {verb} {fixed} quizzes'))
        else:
            self.stdout.write('  All quiz locks match attempt counters')

        self.stdout.write('\n' + self.style.SUCCESS('Current locks'))
        self.stdout.write(f'  Quiz locks: {QuizLock.objects.filter(is_locked=True).count()}')
        self.stdout.write(f'  Security locks (unit): {SecurityLock.objects.filter(is_locked=True, unit__isnull=False).count()}')
        self.stdout.write(f'  Security locks (course-wide): {SecurityLock.objects.filter(is_locked=True, unit__isnull=True).count()}')
