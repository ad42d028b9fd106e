"""
Statement Download Service

FLOW OVERVIEW
- DownloadManager.save_bytes(content, filename, directory, options)
  • Up to max_retries attempts. The delay starts at retry_delay seconds and is
    multiplied by 1.5 after every failed attempt.
  • Errors whose message names a permanent condition (empty file, missing user id,
    invalid date range...) fail immediately without further attempts.
  • Filenames are sanitized before the file is written.
- DownloadService.download_statement(request, options)
  • Validate the request → statement data → calculation check (never blocks) →
    profile (failure tolerated) → PDF → save with retry.
- DownloadService.download_statement_with_progress(request, on_progress, on_error)
  • Same pipeline reporting (stage, percent) and (error, retryable) callbacks.
- DownloadService.build_statement_pdf(request)
  • Render only; used when the PDF is streamed back to the browser.
"""

import logging
import os
import re
import time
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Callable, Optional, Tuple

from flask import current_app

from .errors import NotFoundError
from .pdf_generator import StatementPDFGenerator, generate_statement_filename
from .statements import StatementRequest, StatementData, statement_service

logger = logging.getLogger(__name__)

NON_RETRYABLE_MESSAGES = (
    'browser does not support file downloads',
    'file is empty or invalid',
    'user id is required',
    'invalid date range',
    'browser rejected the file',
)
INVALID_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*]')
MAX_FILENAME_LENGTH = 255
MAX_RANGE = timedelta(days=730)


class DownloadError(Exception):
    def __init__(self, message, code='DOWNLOAD_ERROR', retryable=True):
        super().__init__(message)
        self.message = message
        self.code = code
        self.retryable = retryable


@dataclass
class DownloadOptions:
    max_retries: int = 3
    retry_delay: float = 1.0
    timeout: float = 30.0
    on_progress: Optional[Callable[[int, int], None]] = None
    on_retry: Optional[Callable[[int, Exception], None]] = None
    validate_data: bool = True
    include_user_profile: bool = True


@dataclass
class DownloadResult:
    success: bool
    filename: Optional[str] = None
    path: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 0
    statement_data: Optional[StatementData] = field(default=None, repr=False)
    validation_passed: Optional[bool] = None

    def to_dict(self):
        return {
            'success': self.success,
            'filename': self.filename,
            'path': self.path,
            'error': self.error,
            'attempts': self.attempts,
            'validation_passed': self.validation_passed,
        }


def sanitize_filename(filename: str) -> str:
    cleaned = INVALID_FILENAME_CHARS.sub('_', filename)
    cleaned = re.sub(r'\s+', '_', cleaned)
    cleaned = re.sub(r'_+', '_', cleaned)
    return cleaned[:MAX_FILENAME_LENGTH]


def is_non_retryable(error: Exception) -> bool:
    if isinstance(error, DownloadError) and not error.retryable:
        return True
    message = str(error).lower()
    return any(text in message for text in NON_RETRYABLE_MESSAGES)


class DownloadManager:
    """Write generated files to disk with retry and exponential backoff"""

    @staticmethod
    def _write(content: bytes, path: str, timeout: float):
        started = time.monotonic()
        os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
        temp_path = f"{path}.part"
        with open(temp_path, 'wb') as handle:
            handle.write(content)
        os.replace(temp_path, path)
        if time.monotonic() - started > timeout:
            raise DownloadError(f"Download timeout after {timeout:g}s - file may not have been saved")

    @classmethod
    def save_bytes(cls, content: bytes, filename: str, directory: str,
                   options: Optional[DownloadOptions] = None) -> DownloadResult:
        options = options or DownloadOptions()
        filename = sanitize_filename(filename)
        path = os.path.join(directory, filename)
        delay = options.retry_delay
        last_error = None

        for attempt in range(1, options.max_retries + 1):
            try:
                if options.on_progress:
                    options.on_progress(attempt, options.max_retries)
                if not content:
                    raise DownloadError('File is empty or invalid', 'EMPTY_FILE', retryable=False)
                cls._write(content, path, options.timeout)
                logger.info(f"Saved {filename} on attempt {attempt}")
                return DownloadResult(success=True, filename=filename, path=path, attempts=attempt)
            except (DownloadError, OSError) as e:
                last_error = e
                if is_non_retryable(e):
                    return DownloadResult(success=False, filename=filename, error=str(e), attempts=attempt)
                if attempt < options.max_retries:
                    logger.warning(f"Saving {filename} failed on attempt {attempt}: {e}")
                    if options.on_retry:
                        options.on_retry(attempt, e)
                    time.sleep(delay)
                    delay = delay * 1.5

        return DownloadResult(
            success=False,
            filename=filename,
            error=f"Failed to download after {options.max_retries} attempts. "
                  f"Last error: {last_error or 'Unknown error'}",
            attempts=options.max_retries,
        )


class DownloadService:
    """Statement PDF generation and export"""

    def __init__(self, output_dir: Optional[str] = None):
        self.output_dir = output_dir
        self.logger = logging.getLogger(__name__)

    @property
    def directory(self):
        return self.output_dir or current_app.config.get('STATEMENT_OUTPUT_DIR', 'statements')

    def validate_download_request(self, request: StatementRequest, today: Optional[date] = None) -> Optional[str]:
        """Error message for an unusable request, None when it is valid"""
        if not request.user_id:
            return 'User ID is required'
        if not request.start_date or not request.end_date:
            return 'Start date and end date are required'
        if not isinstance(request.start_date, date) or not isinstance(request.end_date, date):
            return 'Start date and end date must be valid dates'
        if request.start_date >= request.end_date:
            return 'Start date must be before end date'
        if request.end_date - request.start_date > MAX_RANGE:
            return 'Date range cannot exceed 2 years'
        today = today or date.today()
        if _as_date(request.start_date) > today or _as_date(request.end_date) > today:
            return 'Dates cannot be in the future'
        return None

    def _prepare(self, request: StatementRequest, options: DownloadOptions):
        """(statement data, profile, validation passed) or raises DownloadError"""
        response = statement_service.generate_statement_data(request)
        if not response.success or response.data is None:
            raise DownloadError(response.error or 'Failed to generate statement data')
        data = response.data

        validation_passed = True
        if options.validate_data:
            check = statement_service.validate_financial_calculations(data)
            validation_passed = check.is_valid
            if not check.is_valid:
                self.logger.warning(f"Financial calculation validation failed: {check.errors}")

        profile = None
        if options.include_user_profile:
            try:
                profile = statement_service.get_user_profile(request.user_id)
            except NotFoundError as e:
                self.logger.warning(f"Could not fetch user profile: {e.message}")
        return data, profile, validation_passed

    def build_statement_pdf(self, request: StatementRequest,
                            options: Optional[DownloadOptions] = None) -> Tuple[bytes, str, StatementData]:
        options = options or DownloadOptions()
        error = self.validate_download_request(request)
        if error:
            raise DownloadError(error, 'INVALID_REQUEST', retryable=False)
        data, profile, _ = self._prepare(request, options)
        content = StatementPDFGenerator().create_pdf(data, profile)
        return content, generate_statement_filename(data, profile), data

    def download_statement(self, request: StatementRequest,
                           options: Optional[DownloadOptions] = None) -> DownloadResult:
        options = options or DownloadOptions()
        error = self.validate_download_request(request)
        if error:
            return DownloadResult(success=False, error=error, attempts=0)

        try:
            data, profile, validation_passed = self._prepare(request, options)
        except DownloadError as e:
            return DownloadResult(success=False, error=e.message, attempts=0)

        content = StatementPDFGenerator().create_pdf(data, profile)
        result = DownloadManager.save_bytes(content, generate_statement_filename(data, profile),
                                            self.directory, options)
        result.statement_data = data
        result.validation_passed = validation_passed
        return result

    def download_statement_with_progress(self, request: StatementRequest,
                                         on_progress: Optional[Callable[[str, float], None]] = None,
                                         on_error: Optional[Callable[[str, bool], None]] = None) -> DownloadResult:
        progress = on_progress or (lambda stage, percent: None)
        report_error = on_error or (lambda message, retryable: None)

        progress('Validating request', 10)
        error = self.validate_download_request(request)
        if error:
            report_error(error, False)
            return DownloadResult(success=False, error=error, attempts=0)

        progress('Fetching statement data', 40)
        response = statement_service.generate_statement_data(request)
        if not response.success or response.data is None:
            error = response.error or 'Failed to generate statement data'
            report_error(error, True)
            return DownloadResult(success=False, error=error, attempts=0)
        data = response.data

        progress('Validating financial data', 60)
        check = statement_service.validate_financial_calculations(data)
        if not check.is_valid:
            self.logger.warning(f"Financial calculation validation failed: {check.errors}")

        progress('Fetching user profile', 70)
        profile = None
        try:
            profile = statement_service.get_user_profile(request.user_id)
        except NotFoundError as e:
            self.logger.warning(f"Could not fetch user profile: {e.message}")

        progress('Generating PDF', 80)
        content = StatementPDFGenerator().create_pdf(data, profile)
        options = DownloadOptions(
            on_progress=lambda attempt, total: progress(f"Downloading (attempt {attempt}/{total})",
                                                        80 + attempt / total * 20),
            on_retry=lambda attempt, exc: report_error(f"Download attempt {attempt} failed: {exc}", True),
        )
        result = DownloadManager.save_bytes(content, generate_statement_filename(data, profile),
                                            self.directory, options)
        if result.success:
            progress('Download completed', 100)
        else:
            report_error(result.error or 'Download failed', False)

        result.statement_data = data
        result.validation_passed = check.is_valid
        return result


def _as_date(value) -> date:
    return value.date() if hasattr(value, 'date') and callable(value.date) else value


download_service = DownloadService()
