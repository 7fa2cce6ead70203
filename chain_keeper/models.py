"""
Data shapes shared by the extractor, the replay engine and the library.

- Turn / chains: produced by the extractor, replayed by the engine.
- ReplayState / DetectionState: per-run state machines.
- PromptTemplate: what the library stores (camelCase on disk).
- Session: per-page memory shared by the injected controls.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from chain_keeper.errors import ServiceError

CATEGORIES = ["coding", "writing", "analysis", "creative", "other"]


@dataclass(frozen=True)
class Turn:
    prompt: str
    response: Optional[str] = None

    def to_dict(self):
        data = {"prompt": self.prompt}
        if self.response is not None:
            data["response"] = self.response
        return data

    @classmethod
    def from_dict(cls, data):
        prompt = (data.get("prompt") or "").strip()
        if not prompt:
            raise ValueError("Turn prompt must not be empty")
        return cls(prompt=prompt, response=data.get("response"))


class DetectionPhase(str, Enum):
    UNKNOWN = "unknown"
    GENERATING = "generating"
    SETTLING = "settling"
    DONE = "done"
    TIMED_OUT = "timedOut"


@dataclass
class DetectionState:
    checks: int = 0
    phase: DetectionPhase = DetectionPhase.UNKNOWN


class ReplayPhase(str, Enum):
    IDLE = "idle"
    INSERTING = "inserting"
    SUBMITTING = "submitting"
    AWAITING = "awaiting"
    ADVANCING = "advancing"
    DONE = "done"
    ABORTED = "aborted"


@dataclass
class ReplayState:
    steps: list[Turn]
    cursor: int = 0
    phase: ReplayPhase = ReplayPhase.IDLE

    @property
    def total(self):
        return len(self.steps)

    @property
    def is_active(self):
        return self.phase not in (ReplayPhase.IDLE, ReplayPhase.DONE, ReplayPhase.ABORTED)

    @property
    def current(self):
        return self.steps[self.cursor]

    def advance(self):
        # cursor == len(steps) only ever coexists with a terminal phase
        self.cursor += 1
        if self.cursor >= len(self.steps):
            self.cursor = len(self.steps)
            self.phase = ReplayPhase.DONE
        else:
            self.phase = ReplayPhase.ADVANCING

    def abort(self):
        self.phase = ReplayPhase.ABORTED


@dataclass
class ScoreData:
    score: int
    rewrite: str
    goal: Optional[str] = None
    revised_score: Optional[int] = None

    @classmethod
    def from_reply(cls, data):
        try:
            return cls(
                score=int(data.get("score", 0)),
                rewrite=data.get("rewrite", "") or "",
                goal=data.get("goal"),
                revised_score=data.get("revisedScore"),
            )
        except (AttributeError, TypeError, ValueError) as e:
            raise ServiceError(f"Malformed score reply: {e}") from e


@dataclass
class PromptTemplate:
    id: str
    title: str
    prompt: str
    category: str = "other"
    score: Optional[int] = None
    timestamp: int = 0
    is_favorite: bool = False
    is_chain: bool = False
    chain_steps: Optional[list[Turn]] = None

    @property
    def steps(self):
        """Steps to replay; a plain prompt replays as a single step."""
        if self.is_chain and self.chain_steps:
            return list(self.chain_steps)
        return [Turn(prompt=self.prompt)]

    def to_dict(self):
        data = {
            "id": self.id,
            "title": self.title,
            "prompt": self.prompt,
            "category": self.category,
            "timestamp": self.timestamp,
            "isFavorite": self.is_favorite,
            "isChain": self.is_chain,
        }
        if self.score is not None:
            data["score"] = self.score
        if self.chain_steps is not None:
            data["chainSteps"] = [t.to_dict() for t in self.chain_steps]
        return data

    @classmethod
    def from_dict(cls, data):
        steps = data.get("chainSteps")
        return cls(
            id=str(data["id"]),
            title=data.get("title") or "",
            prompt=data.get("prompt") or "",
            category=data.get("category") or "other",
            score=data.get("score"),
            timestamp=int(data.get("timestamp") or 0),
            is_favorite=bool(data.get("isFavorite", False)),
            is_chain=bool(data.get("isChain", False)),
            chain_steps=[Turn.from_dict(s) for s in steps] if steps is not None else None,
        )


@dataclass
class Session:
    """Page-scoped memory. Created on attach, mutated only by the owning component."""
    site: str
    url: str = ""
    last_original_prompt: str = ""
    last_score: Optional[ScoreData] = None
    last_ai_response: str = ""
    has_conversation: bool = False
    suggestions: list[str] = field(default_factory=list)
    replay: Optional[ReplayState] = None
