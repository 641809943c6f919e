"""
Monitoring and metrics collection using Prometheus.
"""
from prometheus_client import Counter, Histogram


summary_jobs_total = Counter(
    'summary_jobs_total',
    'Summarization jobs by outcome',
    ['status']
)

pipeline_stage_duration = Histogram(
    'pipeline_stage_duration_seconds',
    'Time spent in each pipeline stage',
    ['stage']
)

llm_tokens_total = Counter(
    'llm_tokens_total',
    'Tokens consumed by summary generation',
    ['kind']
)

transcriptions_total = Counter(
    'transcriptions_total',
    'Transcriptions produced by provider and outcome',
    ['provider', 'status']
)

attachments_skipped_total = Counter(
    'attachments_skipped_total',
    'Attachments left out of the merged context',
    ['reason']
)

summary_parse_outcomes_total = Counter(
    'summary_parse_outcomes_total',
    'How model output was turned into a summary',
    ['outcome']
)

errors_total = Counter(
    'errors_total',
    'Total number of errors by type',
    ['error_type', 'component']
)


def record_error(error_type: str, component: str):
    """
    Record an error occurrence.

    Args:
        error_type: Type of error (e.g., 'LLMAPIError')
        component: Component where error occurred (e.g., 'summarize')
    """
    errors_total.labels(error_type=error_type, component=component).inc()
