"""Recurrence Validator."""
import re
from typing import Any, Dict, Optional

from taskseries.config import MAX_RECURRENCE_MULTIPLIER, MIN_RECURRENCE_MULTIPLIER
from taskseries.schemas.task import BaseUnit, Recurrence

MAX_TAGS = 10
MAX_TAG_LENGTH = 20


def _result() -> Dict[str, Any]:
    return {
        "valid": True,
        "errors": [],
        "warnings": []
    }


class RecurrenceValidator:
    """Validate recurrence settings and tags for tasks."""

    @staticmethod
    def validate_recurrence_pattern(
        recurrence: Optional[str],
        multiplier: Optional[int] = None,
        custom_frequency: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Validate a recurrence rule and, for custom rules, its cadence.

        Args:
            recurrence: Recurrence type (daily, weekly, monthly, quarterly, yearly, custom)
            multiplier: Units per step for custom rules
            custom_frequency: Base unit for custom rules

        Returns:
            Dict with validation result
        """
        result = _result()

        if recurrence is None:
            return result

        allowed = [r.value for r in Recurrence]
        if recurrence not in allowed:
            result["valid"] = False
            result["errors"].append(f"Recurrence must be one of: {', '.join(allowed)}")
            return result

        if recurrence == Recurrence.CUSTOM:
            if custom_frequency is None or custom_frequency not in [u.value for u in BaseUnit]:
                result["valid"] = False
                result["errors"].append("Custom recurrence requires a base frequency")
                return result

            if multiplier is None:
                result["warnings"].append("Custom recurrence without a multiplier repeats every 1 unit")
            elif not isinstance(multiplier, int) or not (
                MIN_RECURRENCE_MULTIPLIER <= multiplier <= MAX_RECURRENCE_MULTIPLIER
            ):
                result["valid"] = False
                result["errors"].append(
                    f"Recurrence multiplier must be between {MIN_RECURRENCE_MULTIPLIER} "
                    f"and {MAX_RECURRENCE_MULTIPLIER}, got {multiplier}"
                )

        return result

    @staticmethod
    def validate_task_with_recurrence(task_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate the recurrence and tag fields of a task payload.

        Args:
            task_data: Task data dictionary

        Returns:
            Dict with validation result
        """
        result = _result()

        recurrence = task_data.get("recurrence")
        due_date = task_data.get("due_date")

        if recurrence:
            validation = RecurrenceValidator.validate_recurrence_pattern(
                recurrence,
                task_data.get("recurrence_multiplier"),
                task_data.get("custom_frequency"),
            )
            result["warnings"].extend(validation["warnings"])
            if not validation["valid"]:
                result["valid"] = False
                result["errors"].extend(validation["errors"])
                return result

            if not due_date and "due_date" in task_data:
                result["warnings"].append("Task with recurrence should have a due date")

        if "tags" in task_data:
            validation = RecurrenceValidator.validate_tag_limits(task_data.get("tags"))
            result["warnings"].extend(validation["warnings"])
            if not validation["valid"]:
                result["valid"] = False
                result["errors"].extend(validation["errors"])

        return result

    @staticmethod
    def validate_tag_limits(tags: list) -> Dict[str, Any]:
        """
        Validate tag limits.

        Args:
            tags: List of tags

        Returns:
            Dict with validation result
        """
        result = _result()

        if not tags:
            return result

        if not isinstance(tags, list):
            result["valid"] = False
            result["errors"].append("Tags must be a list")
            return result

        if len(tags) > MAX_TAGS:
            result["valid"] = False
            result["errors"].append(f"Maximum {MAX_TAGS} tags allowed, got {len(tags)}")
            return result

        for i, tag in enumerate(tags):
            if not isinstance(tag, str):
                result["valid"] = False
                result["errors"].append(f"Tag at index {i} must be a string")
                return result

            if len(tag) > MAX_TAG_LENGTH:
                result["valid"] = False
                result["errors"].append(f"Tag '{tag}' exceeds maximum length of {MAX_TAG_LENGTH} characters")
                return result

            if not re.match(r'^[\w\s\-_.]+$', tag):
                result["warnings"].append(f"Tag '{tag}' contains potentially problematic characters")

        return result
