"""
LLM Vocab Tutor Plugin

A plugin for scheduled English vocabulary study: a weekly unit schedule,
multi-round learning sessions, mistake review and LLM-graded evaluations.
"""

from . import db
from . import structured
from . import units
from . import scheduler
from . import learning
from . import evaluation
from . import judge
from . import mistakes
from . import repository
from . import tutor
from . import plugin

__version__ = "0.1.0"
__all__ = ["db", "structured", "units", "scheduler", "learning", "evaluation", "judge",
           "mistakes", "repository", "tutor", "plugin"]
