"""Error taxonomy for the search pipeline."""


class SearchPipelineError(Exception):
    """Base class for failures raised by pipeline collaborators."""


class IndexUnavailableError(SearchPipelineError):
    """The index engine could not execute a search or aggregation."""


class LanguageModelError(SearchPipelineError):
    """The language model call failed, timed out or returned an unusable payload."""


class SearchLogError(SearchPipelineError):
    """A search-log record could not be written."""
