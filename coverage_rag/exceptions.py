"""Exception types raised by the retrieval core.

Only genuine configuration and validation problems are represented here. Disk and
database failures (OSError, sqlalchemy.exc.SQLAlchemyError) and embedding provider
failures (openai.OpenAIError) propagate unchanged; "nothing found" conditions are
returned as empty results and logged, never raised.
"""


class CoverageRagError(Exception):
    """Base class for errors raised by this package."""


class ConfigurationError(CoverageRagError, ValueError):
    """A hybrid tunable is outside its domain (alpha not in [0, 1], K not positive)."""


class ValidationError(CoverageRagError, ValueError):
    """Vectors being compared do not share the same dimensionality."""


class NotFoundError(CoverageRagError, LookupError):
    """An ingestion/indexing request named a topic or document that does not exist."""
