"""Rule Evaluator - Decide whether a submission can skip human review"""
import math
import re
from datetime import datetime, timedelta
from typing import Optional

from ..config.settings import settings
from ..domain.models import AutoApprovalRuleSet, Inspection, RuleEvaluation
from ..domain.enums import FrequencyPeriod
from ..utils.logger import get_logger
from ..utils.time import format_hhmm, local_now

logger = get_logger(__name__)

# Leading numeric prefix, so "42 psi" reads as 42 and "psi 42" reads as nothing
_LEADING_NUMBER = re.compile(r"^\s*[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")

FIRST_STEP_FIELD = "responseText"

FREQUENCY_WINDOWS = {
    FrequencyPeriod.HOUR: timedelta(hours=1),
    FrequencyPeriod.DAY: timedelta(days=1),
    FrequencyPeriod.WEEK: timedelta(weeks=1),
}

ALL_CRITERIA_MET = "All criteria met"


def parse_leading_number(text: Optional[str]) -> Optional[float]:
    """Parse the numeric prefix of a free-text response; None if there is none"""
    if not text:
        return None
    match = _LEADING_NUMBER.match(text)
    if not match:
        return None
    value = float(match.group(0))
    return value if math.isfinite(value) else None


def frequency_window(period: FrequencyPeriod) -> timedelta:
    """Trailing window length for a frequency period"""
    return FREQUENCY_WINDOWS[period]


class RuleEvaluator:
    """
    Evaluate one inspection against one workflow's auto-approval rules

    Predicates run in a fixed order and the first failure wins:
    time window, media presence, numeric range, submission frequency.
    The evaluator never mutates the inspection and performs no I/O; the
    frequency predicate needs the caller to supply the recent count.
    """

    def __init__(self, timezone_name: Optional[str] = None):
        self._timezone_name = timezone_name or settings.local_timezone

    def evaluate(
        self,
        inspection: Inspection,
        rules: Optional[AutoApprovalRuleSet],
        now: Optional[datetime] = None,
        recent_auto_approvals: Optional[int] = None
    ) -> RuleEvaluation:
        """
        Evaluate auto-approval eligibility

        Args:
            inspection: Submitted inspection
            rules: Workflow rule set (None means nothing was configured)
            now: Local wall-clock time; defaults to now in the configured timezone
            recent_auto_approvals: Auto-approved submissions of the same inspector
                on the same workflow within the trailing frequency window

        Returns:
            Eligibility plus a human-readable reason
        """
        if rules is None:
            return RuleEvaluation(eligible=False, reason="No rules defined")

        now = now or local_now(self._timezone_name)

        reason = (
            self._check_time_window(rules, now)
            or self._check_media(inspection, rules)
            or self._check_value_range(inspection, rules)
            or self._check_frequency(rules, recent_auto_approvals)
        )
        if reason:
            logger.debug(
                f"Inspection not eligible for auto-approval: {reason}",
                extra={"inspection_id": inspection.inspection_id}
            )
            return RuleEvaluation(eligible=False, reason=reason)

        return RuleEvaluation(eligible=True, reason=ALL_CRITERIA_MET)

    def resolve_value(self, inspection: Inspection, rules: AutoApprovalRuleSet) -> Optional[float]:
        """
        Numeric value the range predicate applies to

        Prefers the dedicated meter reading; otherwise reads the response of
        the step named by ``value_field`` (the first step for "responseText").
        """
        if inspection.meter_reading is not None and math.isfinite(inspection.meter_reading):
            return inspection.meter_reading

        if not inspection.filled_steps:
            return None

        field = rules.value_field or FIRST_STEP_FIELD
        if field == FIRST_STEP_FIELD:
            return parse_leading_number(inspection.filled_steps[0].response_text)

        for step in inspection.filled_steps:
            if field in (step.step_id, step.step_title):
                return parse_leading_number(step.response_text)
        return None

    def _check_time_window(self, rules: AutoApprovalRuleSet, now: datetime) -> Optional[str]:
        if not rules.has_time_window:
            return None

        # Fixed-width HH:MM strings compare in chronological order
        current_time = format_hhmm(now)
        if rules.time_range_start and current_time < rules.time_range_start:
            return f"Outside allowed time range ({current_time} before {rules.time_range_start})"
        if rules.time_range_end and current_time > rules.time_range_end:
            return f"Outside allowed time range ({current_time} after {rules.time_range_end})"
        return None

    def _check_media(self, inspection: Inspection, rules: AutoApprovalRuleSet) -> Optional[str]:
        if not rules.require_photo:
            return None

        for step in inspection.filled_steps:
            if not step.media_urls:
                return f"Required media not provided for step '{step.step_title or step.step_id}'"
        return None

    def _check_value_range(self, inspection: Inspection, rules: AutoApprovalRuleSet) -> Optional[str]:
        if not rules.has_value_bounds:
            return None

        value = self.resolve_value(inspection, rules)
        if value is None:
            return "Value unavailable"

        if rules.min_value is not None and value < rules.min_value:
            return f"Value {value:g} below minimum {rules.min_value:g}"
        if rules.max_value is not None and value > rules.max_value:
            return f"Value {value:g} above maximum {rules.max_value:g}"
        return None

    def _check_frequency(
        self,
        rules: AutoApprovalRuleSet,
        recent_auto_approvals: Optional[int]
    ) -> Optional[str]:
        if rules.frequency_limit is None:
            return None

        if recent_auto_approvals is None:
            # Fail closed when the history query was not run
            return "Submission history unavailable for frequency limit"

        if recent_auto_approvals >= rules.frequency_limit:
            return (
                f"Frequency limit reached: {recent_auto_approvals} auto-approved "
                f"in the last {rules.frequency_period.value} (limit {rules.frequency_limit})"
            )
        return None
