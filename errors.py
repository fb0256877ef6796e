"""
Error taxonomy shared by the encoder, the Gemini client and the session.

  ConfigurationError  — required credential missing (blocks every analysis)
  EncodingError       — an uploaded file couldn't be turned into inline data
  AnalysisError       — a stage ("profile" / "insights") failed: network,
                        non-JSON output or missing required keys

Missing grounding metadata is never an error.
"""
from __future__ import annotations


class SweetTechError(Exception):
    """Base class for every error the session turns into user-visible state."""


class ConfigurationError(SweetTechError):
    pass


class EncodingError(SweetTechError):
    pass


_STAGE_MESSAGES = {
    "profile":  "Failed to analyze profile.",
    "insights": "Failed to generate insights.",
}


class AnalysisError(SweetTechError):
    """A single analysis stage failed. `stage` is "profile" or "insights"."""

    def __init__(self, stage: str, detail: str = "") -> None:
        self.stage  = stage
        self.detail = detail
        message = _STAGE_MESSAGES.get(stage, f"Analysis stage '{stage}' failed.")
        if detail:
            message = f"{message} {detail}"
        super().__init__(message)
