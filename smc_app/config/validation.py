"""Configuration validation utilities."""

from dataclasses import dataclass
from typing import Any


CLUSTERING_MODES = ("sorted", "greedy")


@dataclass(frozen=True)
class ValidationError:
    """Represents a configuration validation error."""
    field: str
    message: str
    value: Any


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class ConfigValidator:
    """Validates configuration parameters."""

    @staticmethod
    def validate_displacement_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate displacement thresholds."""
        errors = []

        for name in ("range_mult", "body_mult"):
            if name in params:
                value = params[name]
                if not _is_number(value) or value <= 0:
                    errors.append(ValidationError(
                        field=name,
                        message="Must be a positive number",
                        value=value
                    ))

        for name in ("body_ratio", "strong_threshold"):
            if name in params:
                value = params[name]
                if not _is_number(value) or value <= 0 or value > 1:
                    errors.append(ValidationError(
                        field=name,
                        message="Must be a positive number between 0 and 1",
                        value=value
                    ))

        return errors

    @staticmethod
    def validate_mss_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate market structure shift parameters."""
        errors = []

        if "confirmation_bars" in params:
            value = params["confirmation_bars"]
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                errors.append(ValidationError(
                    field="confirmation_bars",
                    message="Must be a positive integer",
                    value=value
                ))

        return errors

    @staticmethod
    def validate_tolerance_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate a relative bucketing tolerance."""
        errors = []

        if "tolerance" in params:
            value = params["tolerance"]
            if not _is_number(value) or value <= 0 or value >= 1:
                errors.append(ValidationError(
                    field="tolerance",
                    message="Must be a positive number below 1",
                    value=value
                ))

        return errors

    @staticmethod
    def validate_clustering_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate clustering mode."""
        errors = []

        if "mode" in params and params["mode"] not in CLUSTERING_MODES:
            errors.append(ValidationError(
                field="mode",
                message=f"Must be one of {', '.join(CLUSTERING_MODES)}",
                value=params["mode"]
            ))

        return errors

    @staticmethod
    def validate_execution_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate entry/stop/target parameters."""
        errors = []

        if "stop_buffer_pct" in params:
            value = params["stop_buffer_pct"]
            if not _is_number(value) or value < 0 or value >= 1:
                errors.append(ValidationError(
                    field="stop_buffer_pct",
                    message="Must be a non-negative number below 1",
                    value=value
                ))

        if "target_risk_multiple" in params:
            value = params["target_risk_multiple"]
            if not _is_number(value) or value <= 0:
                errors.append(ValidationError(
                    field="target_risk_multiple",
                    message="Must be a positive number",
                    value=value
                ))

        return errors

    @staticmethod
    def validate_cooldown_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate cooldown durations."""
        errors = []

        for name in ("loss_minutes", "win_minutes"):
            if name in params:
                value = params[name]
                if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                    errors.append(ValidationError(
                        field=name,
                        message="Must be a non-negative integer",
                        value=value
                    ))

        return errors

    @staticmethod
    def validate_feed_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate outbound call limits."""
        errors = []

        if "timeout_seconds" in params:
            value = params["timeout_seconds"]
            if not _is_number(value) or value <= 0:
                errors.append(ValidationError(
                    field="timeout_seconds",
                    message="Must be a positive number",
                    value=value
                ))

        if "max_retries" in params:
            value = params["max_retries"]
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                errors.append(ValidationError(
                    field="max_retries",
                    message="Must be a non-negative integer",
                    value=value
                ))

        return errors

    @staticmethod
    def validate_config(config: dict[str, Any]) -> list[ValidationError]:
        """Validate complete configuration."""
        errors = []

        if "displacement" in config:
            errors.extend(ConfigValidator.validate_displacement_params(config["displacement"]))

        if "mss" in config:
            errors.extend(ConfigValidator.validate_mss_params(config["mss"]))

        if "liquidity" in config:
            errors.extend(ConfigValidator.validate_tolerance_params(config["liquidity"]))

        if "support_resistance" in config:
            errors.extend(ConfigValidator.validate_tolerance_params(config["support_resistance"]))

        if "clustering" in config:
            errors.extend(ConfigValidator.validate_clustering_params(config["clustering"]))

        if "execution" in config:
            errors.extend(ConfigValidator.validate_execution_params(config["execution"]))

        if "cooldown" in config:
            errors.extend(ConfigValidator.validate_cooldown_params(config["cooldown"]))

        if "feeds" in config:
            errors.extend(ConfigValidator.validate_feed_params(config["feeds"]))

        return errors
