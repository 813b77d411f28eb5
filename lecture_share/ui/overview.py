from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from rich import box
from rich.columns import Columns
from rich.console import Console, Group
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from ..services.storage import (
    ROLE_STUDENT,
    ROLE_TEACHER,
    Enrollment,
    LectureRecord,
    LectureRepository,
    UserRecord,
    UserRepository,
)


@dataclass
class TeacherOverview:
    record: UserRecord
    lectures: List[LectureRecord]
    roster: List[Enrollment]


@dataclass
class OverviewSnapshot:
    teachers: List[TeacherOverview]
    student_count: int
    lecture_count: int
    public_count: int
    grant_count: int
    enrollment_count: int


class OverviewUI:
    """Render teachers, their lectures and their rosters using Rich widgets."""

    def __init__(
        self,
        lectures: LectureRepository,
        users: UserRepository,
        *,
        console: Optional[Console] = None,
    ) -> None:
        self._lectures = lectures
        self._users = users
        self._console = console or Console()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def run(self) -> None:
        snapshot = self._collect_snapshot()
        console = self._console

        console.rule("[bold magenta]Lecture Share Overview")

        if not snapshot.teachers:
            console.print(
                Panel(
                    "No teachers are registered yet.\n"
                    "Use [bold]python run.py add-user NAME EMAIL --role teacher[/bold] to add one.",
                    border_style="yellow",
                    box=box.ROUNDED,
                )
            )
            return

        tree_panel = Panel(
            self._build_tree(snapshot.teachers),
            title="Teachers",
            border_style="cyan",
            box=box.ROUNDED,
        )
        console.print(Columns([tree_panel, self._build_stats_panel(snapshot)], expand=True, equal=True))

    # ------------------------------------------------------------------
    # Rendering helpers
    # ------------------------------------------------------------------
    def _build_tree(self, teachers: List[TeacherOverview]) -> Tree:
        tree = Tree("[bold cyan]Teachers", guide_style="cyan")

        for overview in teachers:
            teacher_node = tree.add(self._build_teacher_label(overview.record))

            lecture_node = teacher_node.add(f"[bright_cyan]Lectures ({len(overview.lectures)})")
            if not overview.lectures:
                lecture_node.add("[dim]No lectures yet")
            for lecture in overview.lectures:
                lecture_node.add(self._build_lecture_label(lecture))

            roster_node = teacher_node.add(f"[bright_cyan]Students ({len(overview.roster)})")
            if not overview.roster:
                roster_node.add("[dim]No students enrolled")
            for enrollment in overview.roster:
                roster_node.add(Text(enrollment.student.name or enrollment.student.username))

        return tree

    @staticmethod
    def _build_teacher_label(teacher: UserRecord) -> Text:
        label = Text(teacher.name or teacher.username, style="bold")
        label.append("\n")
        label.append(teacher.email, style="dim")
        return label

    @staticmethod
    def _build_lecture_label(lecture: LectureRecord) -> Text:
        label = Text(lecture.original_name or lecture.filename, style="white")
        label.append("  ")
        if lecture.is_public:
            label.append("public", style="green")
        else:
            label.append("private", style="yellow")
        if lecture.permissions:
            label.append(f" · {len(lecture.permissions)} granted", style="dim")
        return label

    def _build_stats_panel(self, snapshot: OverviewSnapshot) -> Panel:
        people = Table.grid(expand=True, padding=(0, 1))
        people.add_column(style="dim")
        people.add_column(justify="right", style="bold")
        people.add_row("Teachers", str(len(snapshot.teachers)))
        people.add_row("Students", str(snapshot.student_count))
        people.add_row("Enrollments", str(snapshot.enrollment_count))

        lectures = Table.grid(expand=True, padding=(0, 1))
        lectures.add_column(style="dim")
        lectures.add_column(justify="right", style="bold")
        lectures.add_row("Lectures", str(snapshot.lecture_count))
        lectures.add_row("Public", str(snapshot.public_count))
        lectures.add_row("Private", str(snapshot.lecture_count - snapshot.public_count))
        lectures.add_row("Student grants", str(snapshot.grant_count))

        body = Group(people, Rule(style="magenta"), lectures)
        return Panel(body, title="At a glance", border_style="magenta", box=box.ROUNDED)

    # ------------------------------------------------------------------
    # Data aggregation
    # ------------------------------------------------------------------
    def _collect_snapshot(self) -> OverviewSnapshot:
        teachers: List[TeacherOverview] = []
        lecture_count = 0
        public_count = 0
        grant_count = 0
        enrollment_count = 0

        for teacher in self._users.find_by_role(ROLE_TEACHER):
            lectures = self._lectures.find_by_teacher(teacher.id)
            roster = self._users.iter_roster(teacher.id)
            lecture_count += len(lectures)
            public_count += sum(1 for lecture in lectures if lecture.is_public)
            grant_count += sum(len(lecture.permissions) for lecture in lectures)
            enrollment_count += len(roster)
            teachers.append(TeacherOverview(record=teacher, lectures=lectures, roster=roster))

        return OverviewSnapshot(
            teachers=teachers,
            student_count=len(self._users.find_by_role(ROLE_STUDENT)),
            lecture_count=lecture_count,
            public_count=public_count,
            grant_count=grant_count,
            enrollment_count=enrollment_count,
        )


__all__ = ["OverviewUI"]
