"""Cover letter, strategy and screening answers for a job application.

Plain templating. The session core treats the output as opaque data.
"""

from __future__ import annotations

from .models.job import (
    ApplicationData,
    ApplicationPreferences,
    ApplicationStrategy,
    Job,
    ScreeningResponses,
)

COVER_LETTER_TEMPLATE = """Hi there!

I'm excited about this opportunity and I believe I'm the perfect fit for this project.

Based on your requirements, I can deliver exactly what you need with my expertise in {expertise}.

I'm available to start immediately and can provide regular updates throughout the project.

Looking forward to discussing this further!

Best regards,
{signature}"""

# URL keyword -> expertise phrase
EXPERTISE_BY_KEYWORD = {
    "web-development": "web development and modern frameworks",
    "data-analysis": "data analysis and visualization",
}
DEFAULT_EXPERTISE = "the relevant technologies"


def generate_cover_letter(job: Job, preferences: ApplicationPreferences) -> str:
    if job.cover_letter:
        return job.cover_letter
    expertise = DEFAULT_EXPERTISE
    for keyword, phrase in EXPERTISE_BY_KEYWORD.items():
        if keyword in job.url:
            expertise = phrase
            break
    return COVER_LETTER_TEMPLATE.format(expertise=expertise, signature=preferences.signature)


def determine_strategy(job: Job, preferences: ApplicationPreferences) -> ApplicationStrategy:
    return ApplicationStrategy(
        use_profile=preferences.profile,
        bid_amount=job.bid_amount if job.bid_amount is not None else preferences.default_bid,
        priority=preferences.priority,
    )


def generate_screening_responses(job: Job) -> ScreeningResponses:
    return ScreeningResponses()


def generate_application_data(
    job: Job, job_number: int, preferences: ApplicationPreferences
) -> ApplicationData:
    """Build the full application payload for one job."""
    return ApplicationData(
        job_id=job.id,
        job_number=job_number,
        job_url=job.url,
        cover_letter=generate_cover_letter(job, preferences),
        strategy=determine_strategy(job, preferences),
        screening_responses=generate_screening_responses(job),
    )
