"""
Remediation - Configuration.
"""

from dataclasses import dataclass, field
from typing import Any, Dict


DEFAULT_NOTICE_TEMPLATES: Dict[str, str] = {
    "refund_loop": "We noticed an unusual number of refund requests on your account.",
    "panic_spam": "The safety button is reserved for real emergencies.",
    "fake_mismatch": "Several of your profile-mismatch reports could not be verified.",
    "bot_velocity": "Your account is performing actions faster than expected.",
    "prompt_abuse": "Some of your AI assistant requests violated our usage policy.",
    "cancellation_farming": "Your booking cancellation rate is unusually high.",
    "token_drain": "Several of your paid sessions ended unusually quickly.",
    "payout_velocity": "Your account requested several payouts in a short time.",
    "parallel_sessions": "Your account signed in from several sessions at once.",
    "default": "We detected unusual activity on your account.",
}


@dataclass(frozen=True)
class RemediationConfig:
    """
    Action executor configuration.
    
    dry_run records every decision with status DRY_RUN and leaves
    enforcement flags untouched.
    """
    
    dry_run: bool = False
    notice_templates: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_NOTICE_TEMPLATES))
    
    def notice_text(self, signal_type: str) -> str:
        return self.notice_templates.get(signal_type) or self.notice_templates.get(
            "default", DEFAULT_NOTICE_TEMPLATES["default"]
        )
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "dry_run": self.dry_run,
            "notice_templates": dict(self.notice_templates),
        }


def load_config_from_dict(data: Dict[str, Any]) -> RemediationConfig:
    templates = dict(DEFAULT_NOTICE_TEMPLATES)
    templates.update({str(k): str(v) for k, v in (data.get("notice_templates") or {}).items()})
    return RemediationConfig(
        dry_run=bool(data.get("dry_run", False)),
        notice_templates=templates,
    )


__all__ = ["DEFAULT_NOTICE_TEMPLATES", "RemediationConfig", "load_config_from_dict"]
