from pydantic import BaseModel, Field, computed_field


class MatchResult(BaseModel):
    """Best candidate for one query.

    `candidate is None` is the no-match value: the candidate set was empty or
    every distance exceeded the configured cutoff.
    """

    query: str
    candidate: str | None = None
    distance: int | None = Field(default=None, ge=0)
    needs_review: bool = False

    @computed_field  # type: ignore[misc]
    @property
    def matched(self) -> bool:
        return self.candidate is not None

    def format_line(self, show_distance: bool = False) -> str:
        target = self.candidate if self.candidate is not None else "(no match)"
        line = f"{self.query} -> {target}"
        if show_distance and self.distance is not None:
            line += f" (distance {self.distance})"
        return line


class MatchFailure(BaseModel):
    filename: str
    role: str  # "query" or "candidate"
    error: str


class MatchReport(BaseModel):
    results: list[MatchResult] = Field(default_factory=list)
    failures: list[MatchFailure] = Field(default_factory=list)

    def by_query(self, query: str) -> MatchResult | None:
        return next((r for r in self.results if r.query == query), None)

    def format_lines(self, show_distance: bool = False) -> list[str]:
        return [r.format_line(show_distance) for r in self.results]
