from pydantic import BaseModel


class SweepResultRead(BaseModel):
    sweep: str
    examined: int
    changed: int
    failed: int
    claim_ids: list[int]
