from __future__ import annotations

from ..extensions import db
from itemtracker.time_utils import to_utc_z


class JobLease(db.Model):
    """
    Store-backed lease for singleton batch jobs.

    One row per job name. A holder owns the job until expires_at; an expired
    lease may be taken over by anyone. Works across processes because the
    check-and-take is a single conditional UPDATE.
    """
    __tablename__ = "job_leases"

    name = db.Column(db.String(64), primary_key=True)
    holder = db.Column(db.String(128), nullable=True)
    acquired_at = db.Column(db.DateTime(timezone=True), nullable=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "holder": self.holder,
            "acquired_at": to_utc_z(self.acquired_at) if self.acquired_at else None,
            "expires_at": to_utc_z(self.expires_at) if self.expires_at else None,
        }
