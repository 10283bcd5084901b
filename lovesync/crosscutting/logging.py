import json
import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Context variables for correlation
job_id_var: ContextVar[Optional[str]] = ContextVar('job_id', default=None)
user_var: ContextVar[Optional[str]] = ContextVar('user', default=None)
stage_var: ContextVar[Optional[str]] = ContextVar('stage', default=None)


class SecretMasker:
    """Masks sensitive information in log messages."""

    def __init__(self):
        """Initialize secret masker with patterns."""
        self.patterns = [
            # API keys, secrets and passwords
            r'(?i)(api_key|api_secret|secret|password|token)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{10,})["\']?',
            # Session keys, both spelled out and as the wire parameter
            r'(?i)\b(session_key|sk)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{10,})["\']?',
            # Request signatures
            r'(?i)\b(api_sig)[\s]*[:=][\s]*["\']?([a-fA-F0-9]{16,})["\']?',
        ]

        self.compiled_patterns = [re.compile(pattern) for pattern in self.patterns]

    def mask_secrets(self, text: str) -> str:
        """Mask sensitive information in text."""
        if not text:
            return text

        masked_text = text

        for pattern in self.compiled_patterns:
            def replace_match(match):
                prefix = match.group(1)
                secret = match.group(2)
                # Keep first 4 and last 4 characters, mask the rest
                if len(secret) > 8:
                    masked_secret = secret[:4] + '*' * (len(secret) - 8) + secret[-4:]
                else:
                    masked_secret = '*' * len(secret)
                return f"{prefix}: {masked_secret}"

            masked_text = pattern.sub(replace_match, masked_text)

        return masked_text

    def mask_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Mask sensitive information in dictionary values."""
        if not data:
            return data

        masked_data = {}

        for key, value in data.items():
            if isinstance(value, str):
                masked_data[key] = self.mask_secrets(value)
            elif isinstance(value, dict):
                masked_data[key] = self.mask_dict(value)
            elif isinstance(value, list):
                masked_data[key] = [self.mask_dict(item) if isinstance(item, dict)
                                    else self.mask_secrets(item) if isinstance(item, str)
                                    else item for item in value]
            else:
                masked_data[key] = value

        return masked_data


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(self):
        super().__init__()
        self.masker = SecretMasker()

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        job_id = job_id_var.get()
        user = user_var.get()
        stage = stage_var.get()

        log_entry = {
            'ts': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': self.mask_secrets(record.getMessage()),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        if job_id:
            log_entry['jobId'] = job_id
        if user:
            log_entry['user'] = user
        if stage:
            log_entry['stage'] = stage

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        if hasattr(record, 'fields') and record.fields:
            log_entry['fields'] = self.masker.mask_dict(record.fields)

        return json.dumps(log_entry, ensure_ascii=False)

    def mask_secrets(self, text: str) -> str:
        return self.masker.mask_secrets(text)


class CorrelationContext:
    """Context manager for correlation data."""

    def __init__(self, job_id: Optional[str] = None,
                 user: Optional[str] = None,
                 stage: Optional[str] = None):
        self.job_id = job_id
        self.user = user
        self.stage = stage
        self._tokens = []

    def __enter__(self):
        """Set correlation context."""
        if self.job_id is not None:
            self._tokens.append((job_id_var, job_id_var.set(self.job_id)))
        if self.user is not None:
            self._tokens.append((user_var, user_var.set(self.user)))
        if self.stage is not None:
            self._tokens.append((stage_var, stage_var.set(self.stage)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Restore correlation context."""
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()


def setup_logging(level: str = 'INFO',
                  log_file: Optional[str] = None,
                  job_id: Optional[str] = None) -> logging.Logger:
    """Setup structured logging on the ``lovesync`` logger."""
    logger = logging.getLogger('lovesync')
    logger.setLevel(getattr(logging, level.upper()))

    logger.handlers.clear()

    formatter = StructuredFormatter()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if job_id:
        job_id_var.set(job_id)

    return logger


def get_logger(name: str = 'lovesync') -> logging.Logger:
    return logging.getLogger(name)


def log_with_fields(logger: logging.Logger, level: str, message: str,
                    fields: Optional[Dict[str, Any]] = None,
                    exc_info: bool = False, **kwargs):
    """Log message with additional structured fields."""
    levelno = getattr(logging, level.upper())
    if not logger.isEnabledFor(levelno):
        return

    record = logger.makeRecord(
        logger.name, levelno, '', 0, message, (), None
    )
    if exc_info:
        record.exc_info = sys.exc_info()

    merged = dict(fields or {})
    merged.update(kwargs)
    if merged:
        record.fields = merged

    logger.handle(record)


# Convenience functions for common logging patterns
def log_sync_start(logger: logging.Logger, job_id: str, user_count: int, **kwargs):
    """Log reconciliation pass start."""
    with CorrelationContext(job_id=job_id, stage='start'):
        log_with_fields(logger, 'INFO', 'Sync started', {
            'user_count': user_count,
            **kwargs
        })


def log_user_start(logger: logging.Logger, username: str, artist_count: int, **kwargs):
    """Log start of one user's sync."""
    with CorrelationContext(user=username, stage='user_start'):
        log_with_fields(logger, 'INFO', f'Syncing loved tracks for {username}', {
            'artist_count': artist_count,
            **kwargs
        })


def log_user_complete(logger: logging.Logger, username: str, matched_songs: int, **kwargs):
    """Log completion of one user's sync."""
    with CorrelationContext(user=username, stage='user_complete'):
        log_with_fields(logger, 'INFO',
                        f'Finished loved tracks sync for {username}. Matched songs: {matched_songs}', {
                            'matched_songs': matched_songs,
                            **kwargs
                        })


def log_sync_complete(logger: logging.Logger, job_id: str, outcome: str, total_users: int, **kwargs):
    """Log reconciliation pass completion."""
    with CorrelationContext(job_id=job_id, stage='complete'):
        log_with_fields(logger, 'INFO', 'Sync finished', {
            'outcome': outcome,
            'total_users': total_users,
            **kwargs
        })


def log_error(logger: logging.Logger, message: str, error: Exception, **kwargs):
    """Log error with exception details. Call from inside an ``except`` block."""
    log_with_fields(logger, 'ERROR', message, {
        'error_type': type(error).__name__,
        'error_message': str(error),
        **kwargs
    }, exc_info=True)
