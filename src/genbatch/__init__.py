from .config import EngineSettings as EngineSettings
from .credentials import CredentialPool as CredentialPool
from .credentials import match_platforms as match_platforms
from .engine import BatchEngine as BatchEngine
from .exceptions import ConfigurationError as ConfigurationError
from .exceptions import DownloadError as DownloadError
from .exceptions import GenbatchError as GenbatchError
from .exceptions import ProviderError as ProviderError
from .exceptions import RateLimitError as RateLimitError
from .fingerprint import compute_fingerprint as compute_fingerprint
from .ledger import JobLedger as JobLedger
from .models import JobInput as JobInput
from .models import JobRecord as JobRecord
from .models import QueryResult as QueryResult
from .providers import BaseProvider as BaseProvider
from .providers import load_provider as load_provider
from .status import ErrorCode as ErrorCode
from .status import JobStatus as JobStatus

__all__ = [
    "BatchEngine",
    "BaseProvider",
    "load_provider",
    "CredentialPool",
    "match_platforms",
    "EngineSettings",
    "JobLedger",
    "JobInput",
    "JobRecord",
    "QueryResult",
    "JobStatus",
    "ErrorCode",
    "compute_fingerprint",
    "GenbatchError",
    "ConfigurationError",
    "ProviderError",
    "RateLimitError",
    "DownloadError",
]
