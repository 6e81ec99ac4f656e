"""
Quiz attempts merger. Owns quiz_attempts and quiz_grades.

Attempts are unique per (quiz, userid, attempt), so moving them needs a policy:
  renumber       the kept user's attempts keep their numbers; the old user's attempts follow them
  delete_fromid  drop the old user's attempts and grades
  delete_toid    drop the kept user's attempts and grades on the quizzes the old user attempted,
                 then move the old user's ones
  remain         leave everything where it is
"""
import logging
from collections import defaultdict

from sqlalchemy import delete, inspect, select, update

from mergeusers.services.mergers.base import MergeContext, TableMerger
from mergeusers.services.schema import reflect_table

logger = logging.getLogger(__name__)

ACTION_RENUMBER = "renumber"
ACTION_DELETE_FROM_SOURCE = "delete_fromid"
ACTION_DELETE_FROM_TARGET = "delete_toid"
ACTION_REMAIN = "remain"

ATTEMPTS_TABLE = "quiz_attempts"
GRADES_TABLE = "quiz_grades"


class QuizAttemptsMerger(TableMerger):
    """Moves quiz attempts and grades according to the configured quiz_attempts_action."""

    def tables_to_skip(self) -> list[str]:
        return [ATTEMPTS_TABLE, GRADES_TABLE]

    @property
    def action(self) -> str:
        return self.settings.quiz_attempts_action

    def merge(self, context: MergeContext, log: list[str], errors: list[str]) -> None:
        if self.action == ACTION_REMAIN:
            log.append(f"{ATTEMPTS_TABLE}: attempts of user {context.from_id} remain untouched ({ACTION_REMAIN})")
            return

        conn = context.conn
        attempts = reflect_table(conn, ATTEMPTS_TABLE)
        has_grades = inspect(conn).has_table(GRADES_TABLE)
        grades = reflect_table(conn, GRADES_TABLE) if has_grades else None

        if self.action == ACTION_DELETE_FROM_SOURCE:
            n = conn.execute(delete(attempts).where(attempts.c.userid == context.from_id)).rowcount
            log.append(f"DELETE FROM {ATTEMPTS_TABLE} WHERE userid = {context.from_id} ({n} rows)")
            if grades is not None:
                n = conn.execute(delete(grades).where(grades.c.userid == context.from_id)).rowcount
                log.append(f"DELETE FROM {GRADES_TABLE} WHERE userid = {context.from_id} ({n} rows)")
            return

        quizzes = conn.execute(
            select(attempts.c.quiz).where(attempts.c.userid == context.from_id).distinct()
        ).scalars().all()
        if self.action == ACTION_DELETE_FROM_TARGET:
            self._delete_target(context, attempts, grades, quizzes, log)
        elif self.action == ACTION_RENUMBER:
            self._renumber(context, attempts, quizzes, log)
        else:
            errors.append(f"{ATTEMPTS_TABLE}: unknown quiz attempts action {self.action!r}")
            return
        if grades is not None:
            self._merge_grades(context, grades, log)

    def _delete_target(self, context, attempts, grades, quizzes, log) -> None:
        conn = context.conn
        if quizzes:
            n = conn.execute(
                delete(attempts).where(attempts.c.userid == context.to_id, attempts.c.quiz.in_(quizzes))
            ).rowcount
            log.append(f"DELETE FROM {ATTEMPTS_TABLE} WHERE userid = {context.to_id} AND quiz IN {tuple(quizzes)} ({n} rows)")
            if grades is not None:
                conn.execute(delete(grades).where(grades.c.userid == context.to_id, grades.c.quiz.in_(quizzes)))
        n = conn.execute(
            update(attempts).where(attempts.c.userid == context.from_id).values(userid=context.to_id)
        ).rowcount
        if n:
            log.append(f"UPDATE {ATTEMPTS_TABLE} SET userid = {context.to_id} WHERE userid = {context.from_id} ({n} rows)")

    def _renumber(self, context, attempts, quizzes, log) -> None:
        conn = context.conn
        if not quizzes:
            return
        rows = conn.execute(
            select(attempts.c.id, attempts.c.quiz, attempts.c.userid, attempts.c.attempt)
            .where(attempts.c.userid.in_([context.from_id, context.to_id]), attempts.c.quiz.in_(quizzes))
            .order_by(attempts.c.quiz, attempts.c.attempt, attempts.c.id)
        ).all()
        last_target: dict = defaultdict(int)
        moving: dict = defaultdict(list)
        for row in rows:
            if row.userid == context.to_id:
                last_target[row.quiz] = max(last_target[row.quiz], row.attempt or 0)
            else:
                moving[row.quiz].append(row.id)

        for quiz, ids in moving.items():
            first = last_target[quiz] + 1
            for number, attempt_id in enumerate(ids, start=first):
                conn.execute(
                    update(attempts)
                    .where(attempts.c.id == attempt_id)
                    .values(userid=context.to_id, attempt=number)
                )
            log.append(
                f"{ATTEMPTS_TABLE}: quiz {quiz}: {len(ids)} attempts of user {context.from_id} "
                f"renumbered {first}..{first + len(ids) - 1} for user {context.to_id}"
            )

    def _merge_grades(self, context, grades, log) -> None:
        """Keep the best grade per quiz under the kept user."""
        conn = context.conn
        rows = conn.execute(
            select(grades.c.id, grades.c.quiz, grades.c.userid, grades.c.grade)
            .where(grades.c.userid.in_([context.from_id, context.to_id]))
        ).all()
        by_quiz: dict = defaultdict(dict)
        for row in rows:
            by_quiz[row.quiz][row.userid] = row

        for quiz, owners in by_quiz.items():
            source = owners.get(context.from_id)
            if source is None:
                continue
            target = owners.get(context.to_id)
            if target is None:
                conn.execute(update(grades).where(grades.c.id == source.id).values(userid=context.to_id))
                log.append(f"UPDATE {GRADES_TABLE} SET userid = {context.to_id} WHERE id = {source.id}")
                continue
            best = max((g for g in (target.grade, source.grade) if g is not None), default=None)
            if best != target.grade:
                conn.execute(update(grades).where(grades.c.id == target.id).values(grade=best))
            conn.execute(delete(grades).where(grades.c.id == source.id))
            log.append(f"{GRADES_TABLE}: quiz {quiz}: kept grade {best} for user {context.to_id}")
