"""
Structured Logger configuration for Match Integrity.

This module provides a centralized logger configuration with structured JSON logging
and consistent context fields across validation, sealing and re-verification.

Environment-aware logging:
- With MATCH_INTEGRITY_LOG_FILE set: JSON logs are also written to that file,
  and warnings/errors are mirrored to stderr in plain text
- Otherwise: JSON logs go to stdout
"""

import logging
import os
import sys
from typing import Any, Optional

from aws_lambda_powertools import Logger


class MatchIntegrityLogger:
    """
    Centralized logger for Match Integrity with structured logging.

    Wraps the Powertools Logger and adds helpers for the events the integrity
    subsystem emits (validation, sealing, tamper detection, batches).
    """

    def __init__(self, service_name: str = "match-integrity"):
        """
        Initialize the logger with service configuration.

        Args:
            service_name: Name of the service for log identification
        """
        self.service_name = service_name
        self.log_file_path = os.getenv("MATCH_INTEGRITY_LOG_FILE")

        self._logger = Logger(
            service=service_name,
            level=os.getenv("LOG_LEVEL", "INFO"),
            use_datetime_directive=True,
            json_serializer=self._custom_serializer,
        )

        self._configure_handler()

    def _configure_handler(self) -> None:
        """
        Attach a file handler when MATCH_INTEGRITY_LOG_FILE is configured.

        The default stdout handler stays in place; the file gets the same JSON
        formatter and stderr gets a short plain-text copy of warnings.
        """
        if not self.log_file_path:
            return

        try:
            log_dir = os.path.dirname(self.log_file_path)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)

            file_handler = logging.FileHandler(self.log_file_path)
            file_handler.setFormatter(self._logger.registered_formatter)
            self._logger.addHandler(file_handler)

            stderr_handler = logging.StreamHandler(sys.stderr)
            stderr_handler.setLevel(logging.WARNING)
            stderr_handler.setFormatter(logging.Formatter("%(levelname)s - %(message)s"))
            self._logger.addHandler(stderr_handler)

        except OSError as e:
            import warnings

            warnings.warn(
                f"Cannot write to {self.log_file_path}: {e}. Logging to stdout only.",
                stacklevel=2,
            )

    def get_logger(self) -> Logger:
        """
        Get the configured structured Logger instance.

        Returns:
            Configured Logger instance
        """
        return self._logger

    def log_validation_complete(
        self,
        record_id: str,
        score: int,
        is_valid: bool,
        issue_codes: list[str],
        warning_codes: list[str],
    ) -> None:
        """
        Log the outcome of validating one match.

        Args:
            record_id: Match ID
            score: Trust score 0-100
            is_valid: Whether the match has no critical issues
            issue_codes: Codes of the issues raised
            warning_codes: Codes of the warnings raised
        """
        log_data = {
            "operation": "validate_match",
            "record_id": record_id,
            "score": score,
            "is_valid": is_valid,
            "issue_codes": issue_codes,
            "warning_codes": warning_codes,
            "service": self.service_name,
        }

        if is_valid:
            self._logger.info(f"Match validated: {record_id}", extra=log_data)
        else:
            self._logger.warning(f"Match failed validation: {record_id}", extra=log_data)

    def log_verification_applied(
        self, record_id: str, participant_id: str, algorithm: str, hash_prefix: str
    ) -> None:
        """
        Log that a match was hashed and sealed.

        Args:
            record_id: Match ID
            participant_id: Participant the record was sealed for
            algorithm: Digest algorithm used
            hash_prefix: Leading characters of the record hash
        """
        self._logger.info(
            f"Match sealed: {record_id}",
            extra={
                "operation": "apply_verification",
                "record_id": record_id,
                "participant_id": participant_id,
                "algorithm": algorithm,
                "hash_prefix": hash_prefix,
                "service": self.service_name,
            },
        )

    def log_reverification(
        self,
        record_id: str,
        modification_detected: bool,
        modified_fields: Optional[list[str]] = None,
        error: Optional[str] = None,
    ) -> None:
        """
        Log a re-verification result.

        Args:
            record_id: Match ID
            modification_detected: Whether tampering was detected
            modified_fields: Fields whose fingerprint no longer matches
            error: Error message if the record could not be checked
        """
        log_data = {
            "operation": "reverify_match",
            "record_id": record_id,
            "modification_detected": modification_detected,
            "service": self.service_name,
        }

        if modified_fields:
            log_data["modified_fields"] = modified_fields
        if error is not None:
            log_data["error"] = error

        if modification_detected:
            self._logger.warning(f"Tampering detected: {record_id}", extra=log_data)
        else:
            self._logger.info(f"Seal intact: {record_id}", extra=log_data)

    def log_batch_complete(self, participant_id: str, summary: dict[str, Any]) -> None:
        """
        Log the completion of a batch verification.

        Args:
            participant_id: Participant the batch belongs to
            summary: Batch totals
        """
        self._logger.info(
            "Batch verification completed",
            extra={
                "operation": "verify_batch",
                "participant_id": participant_id,
                "summary": summary,
                "service": self.service_name,
            },
        )

    @staticmethod
    def _custom_serializer(obj: Any) -> Any:
        """
        Custom JSON serializer for complex objects including Pydantic models.

        Args:
            obj: Object to serialize

        Returns:
            Serializable representation of the object
        """
        if hasattr(obj, "isoformat"):
            return obj.isoformat()
        elif hasattr(obj, "model_dump"):
            return obj.model_dump(mode="json", by_alias=True)
        elif hasattr(obj, "__dict__"):
            return obj.__dict__
        else:
            return str(obj)


# Global logger instance
integrity_logger = MatchIntegrityLogger()


# Convenience function to get logger
def get_logger() -> Logger:
    """
    Get the global logger instance.

    Returns:
        Configured structured Logger
    """
    return integrity_logger.get_logger()
