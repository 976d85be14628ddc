"""LLM access for jdmatch: inference clients, retry, output repair and prompts."""
from .provider_base import FailureKind, InferenceClient, InferenceError
from .retry_logic import ResilientInvoker, RetryConfig, invoke
from .sanitizer import ParseFailure, Parsed, sanitize, sanitize_object

__all__ = [
    'FailureKind',
    'InferenceClient',
    'InferenceError',
    'ResilientInvoker',
    'RetryConfig',
    'invoke',
    'Parsed',
    'ParseFailure',
    'sanitize',
    'sanitize_object',
]
