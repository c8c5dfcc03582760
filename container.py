from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from flask import Flask, current_app
from sqlalchemy.orm import Session

from models import utcnow
from workflow import Clock, DeadlineResolver, GradeAggregator, SubmissionEvaluator

EXTENSION_KEY = 'workflow'


@dataclass(frozen=True)
class Container:
    """Workflow components wired to one store session handle."""

    session: Session

    deadlines: DeadlineResolver
    submissions: SubmissionEvaluator
    grades: GradeAggregator


def build_container(session: Session, *, clock: Optional[Clock] = None) -> Container:
    deadlines = DeadlineResolver(session)
    submissions = SubmissionEvaluator(session, deadlines, clock=clock or utcnow)
    grades = GradeAggregator(session)
    return Container(session=session, deadlines=deadlines, submissions=submissions, grades=grades)


def init_container(app: Flask, session: Session, *, clock: Optional[Clock] = None) -> Container:
    container = build_container(session, clock=clock)
    app.extensions[EXTENSION_KEY] = container
    return container


def get_container() -> Container:
    return current_app.extensions[EXTENSION_KEY]
