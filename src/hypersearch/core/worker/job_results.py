"""
Job results
===========

Content of the ``results`` field of a job: which model is the best so far, its
metric value and whether it has been saved as the final best model.

The field is the only one written with compare-and-set. The raw string a
snapshot was parsed from is kept along with it, since the conditional write
compares it byte for byte with what is stored.

"""
from __future__ import annotations

import json
from dataclasses import dataclass, field

VERSION = 1


@dataclass
class JobResults:
    """Parsed job results

    Attributes
    ----------
    best_model: int or None
        Id of the model holding the best model status.
    best_value: float or None
        Optimized metric of the best model, lower is better.
    metrics: dict
        All the metrics of the best model.
    saved: bool
        True once the best model completed and saved its checkpoint and predictions.
        Only one model per job can be saved at a time.
    raw: str or None
        Exact string the results were parsed from, None if the job had no results.

    """

    best_model: int | None = None
    best_value: float | None = None
    metrics: dict = field(default_factory=dict)
    saved: bool = False
    raw: str | None = field(default=None, compare=False)

    @classmethod
    def parse(cls, raw: str | None) -> JobResults:
        """Parse the ``results`` field of a job, ``None`` meaning no results yet"""
        if raw is None:
            return cls()

        data = json.loads(raw)
        return cls(
            best_model=data.get("bestModel"),
            best_value=data.get("bestValue"),
            metrics=data.get("metrics") or {},
            saved=bool(data.get("saved", False)),
            raw=raw,
        )

    @property
    def is_empty(self) -> bool:
        """True if no model ever published results"""
        return self.raw is None

    def serialize(self) -> str:
        """Return the canonical JSON serialization"""
        return json.dumps(
            {
                "version": VERSION,
                "bestModel": self.best_model,
                "bestValue": self.best_value,
                "metrics": self.metrics,
                "saved": self.saved,
            },
            sort_keys=True,
        )
