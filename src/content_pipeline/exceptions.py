"""
Custom exceptions for content synthesis operations.
"""

class ContentPipelineError(Exception):
    """Base exception for content pipeline operations"""
    pass

class SearchError(ContentPipelineError):
    """Raised when a search provider call fails or times out"""
    pass

class LLMError(ContentPipelineError):
    """Raised when a text-generation model call fails or times out"""
    pass

class GenerationError(ContentPipelineError):
    """Raised when content generation cannot continue"""
    pass

class ConfigurationError(ContentPipelineError):
    """Raised when configuration is invalid or missing"""
    pass
