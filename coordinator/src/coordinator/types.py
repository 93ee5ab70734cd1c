from typing import Literal, TypedDict

type Outcome = Literal["nice", "nope"]
type SessionStatus = Literal["idle", "awaiting_response", "game_over", "terminated"]


class ChallengePayload(TypedDict):
    choices: list[int]
    hp: int
    round: int
    sequence: int


class ResultPayload(TypedDict):
    result: Outcome
    hp: int
    sequence: int


class GameOverPayload(TypedDict):
    gameOver: bool
    hp: int


class SessionSnapshot(TypedDict):
    device_id: str
    name: str
    state: SessionStatus
    hp: int
    round: int
    correct: int
    incorrect: int
    sequence: int
    last_ack: int
    retries: int
    terminated: bool
    restart_pending: bool


class StatusOk(TypedDict):
    ok: bool
