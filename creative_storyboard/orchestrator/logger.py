"""Structured JSON logger for storyboard generation observability.

This module provides structured logging functionality that writes JSON-formatted
log entries to storyboard.log in the output directory. Each log entry is a single
JSON object on one line, making it easy to parse and analyze.

Log Event Types:
- generation_start: A storyboard request was received
- cache_hit: The plan was served from the response cache
- stage_start: A generation stage (llm_call, parse) begins
- stage_complete: A stage completes successfully
- stage_failure: A stage encounters an error
- generation_complete: A plan was returned
- generation_error: The request failed with a GenerationFailure
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional


LOG_FILE_NAME = "storyboard.log"


class StructuredJSONLogger:
    """Structured JSON logger that writes to storyboard.log.

    Each log entry is a single JSON object on one line:

    {
        "event": "generation_start|stage_start|...",
        "timestamp": "ISO8601",
        "request_id": "string or null",
        ...additional fields based on event type...
    }

    The logger maintains both a file handle for JSON logs and a console handler
    for human-readable logs.
    """

    def __init__(self, output_directory: Optional[str] = None):
        """Initialize the structured JSON logger.

        Args:
            output_directory: Directory where storyboard.log will be written.
                            If None, only console logging is enabled.
        """
        self.output_directory = output_directory
        self.log_file_path = None
        self.json_file_handle = None

        if output_directory:
            self._setup_log_file(output_directory)

        self.logger = logging.getLogger(__name__)
        if not self.logger.handlers:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(logging.INFO)
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            console_handler.setFormatter(formatter)
            self.logger.addHandler(console_handler)
            self.logger.setLevel(logging.INFO)

    def _setup_log_file(self, output_directory: str) -> None:
        output_path = Path(output_directory)
        output_path.mkdir(parents=True, exist_ok=True)

        self.log_file_path = output_path / LOG_FILE_NAME
        self.json_file_handle = open(self.log_file_path, 'a', encoding='utf-8')

    def _write_json_log(self, event: str, request_id: Optional[str], **fields: Any) -> None:
        """Write one JSON log entry to storyboard.log."""
        if not self.json_file_handle:
            return

        log_entry: Dict[str, Any] = {
            "event": event,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "request_id": request_id,
        }
        log_entry.update(fields)

        json_line = json.dumps(log_entry, ensure_ascii=False, default=str)
        self.json_file_handle.write(json_line + '\n')
        self.json_file_handle.flush()

    def log_generation_start(
        self,
        brand_name: str,
        target_duration: int,
        request_id: Optional[str] = None
    ) -> None:
        """Log that a storyboard request was received.

        Args:
            brand_name: Brand the storyboard is for
            target_duration: Requested ad length in seconds
            request_id: Caller-supplied trace id
        """
        self._write_json_log(
            "generation_start",
            request_id,
            brand_name=brand_name,
            target_duration=target_duration
        )
        self.logger.info(f"Generating storyboard for {brand_name} ({target_duration}s)")

    def log_cache_hit(self, cache_key: str, request_id: Optional[str] = None) -> None:
        self._write_json_log("cache_hit", request_id, cache_key=cache_key)
        self.logger.info(f"Serving cached storyboard {cache_key}")

    def log_stage_start(
        self,
        stage: str,
        input_summary: str,
        request_id: Optional[str] = None,
        retry_attempt: int = 0
    ) -> None:
        """Log stage execution start event.

        Args:
            stage: Stage name (llm_call, parse)
            input_summary: Brief summary of input data
            request_id: Caller-supplied trace id
            retry_attempt: Retry attempt number (0 for first attempt)
        """
        self._write_json_log(
            "stage_start",
            request_id,
            stage=stage,
            input_summary=input_summary,
            retry_attempt=retry_attempt
        )
        attempt_str = f" (attempt {retry_attempt + 1})" if retry_attempt > 0 else ""
        self.logger.info(f"Starting {stage}{attempt_str}: {input_summary}")

    def log_stage_complete(
        self,
        stage: str,
        duration_ms: float,
        output_summary: str,
        request_id: Optional[str] = None,
        status: str = "SUCCESS"
    ) -> None:
        """Log stage completion event.

        Args:
            stage: Stage name
            duration_ms: Execution duration in milliseconds
            output_summary: Brief summary of output data
            request_id: Caller-supplied trace id
            status: Execution status (SUCCESS or DEGRADED)
        """
        self._write_json_log(
            "stage_complete",
            request_id,
            stage=stage,
            duration_ms=round(duration_ms, 2),
            output_summary=output_summary,
            status=status
        )
        self.logger.info(f"Completed {stage} in {duration_ms:.2f}ms: {output_summary}")

    def log_stage_failure(
        self,
        stage: str,
        error_message: str,
        error_code: str,
        input_context: str,
        request_id: Optional[str] = None,
        duration_ms: Optional[float] = None
    ) -> None:
        """Log stage failure event.

        Args:
            stage: Stage name
            error_message: Human-readable error message
            error_code: Machine-readable error code
            input_context: Relevant input excerpt for debugging
            request_id: Caller-supplied trace id
            duration_ms: Optional execution duration in milliseconds
        """
        fields: Dict[str, Any] = {
            "stage": stage,
            "error_message": error_message,
            "error_code": error_code,
            "input_context": input_context,
        }
        if duration_ms is not None:
            fields["duration_ms"] = round(duration_ms, 2)

        self._write_json_log("stage_failure", request_id, **fields)
        self.logger.error(f"Failed {stage} [{error_code}]: {error_message}")

    def log_generation_complete(
        self,
        storyboard_id: str,
        scene_count: int,
        total_duration: int,
        duration_seconds: float,
        parse_stage: Optional[str] = None,
        request_id: Optional[str] = None
    ) -> None:
        """Log that a storyboard plan was returned.

        Args:
            storyboard_id: Id of the returned plan
            scene_count: Number of scenes
            total_duration: Sum of scene durations
            duration_seconds: Wall time of the request
            parse_stage: Cascade stage the plan came from (None for cache hits)
            request_id: Caller-supplied trace id
        """
        fields: Dict[str, Any] = {
            "storyboard_id": storyboard_id,
            "scene_count": scene_count,
            "total_duration": total_duration,
            "duration_seconds": round(duration_seconds, 3),
        }
        if parse_stage is not None:
            fields["parse_stage"] = parse_stage

        self._write_json_log("generation_complete", request_id, **fields)
        self.logger.info(
            f"Storyboard {storyboard_id} ready: {scene_count} scenes, {total_duration}s "
            f"in {duration_seconds:.2f}s"
        )

    def log_generation_error(
        self,
        error_code: str,
        error_message: str,
        stage: Optional[str] = None,
        request_id: Optional[str] = None
    ) -> None:
        """Log a request-level failure.

        Args:
            error_code: Machine-readable error code
            error_message: Error message
            stage: Optional stage where the error occurred
            request_id: Caller-supplied trace id
        """
        fields: Dict[str, Any] = {
            "error_code": error_code,
            "error_message": error_message,
        }
        if stage:
            fields["stage"] = stage

        self._write_json_log("generation_error", request_id, **fields)
        self.logger.error(f"Storyboard generation error [{error_code}]: {error_message}")

    def close(self) -> None:
        """Close the log file handle."""
        if self.json_file_handle:
            self.json_file_handle.close()
            self.json_file_handle = None

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - ensures log file is closed."""
        self.close()
        return False
