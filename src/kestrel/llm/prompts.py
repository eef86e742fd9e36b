from __future__ import annotations

COVER_LETTER_PROMPT = """
You are a job applicant writing a short application message.
Write a professional, personalized and concise message based on the job
description and candidate profile below. Body text only: no subject line,
greeting or sign-off.

Candidate profile:
{profile}

Job description:
{job_description}
""".strip()

JOB_PERSONA_PROMPT = """
You match candidates to roles.
Read the resume below and write one paragraph describing the job this
candidate should realistically apply for next, phrased the way an employer
writes a job description ("We are looking for ..."). Pick the seniority from
their experience, name the three to five hard skills they actually used, and
keep any location or work-authorization constraints the resume states.
Return only that paragraph.

Resume:
{resume_text}
""".strip()

FALLBACK_COVER_LETTER = (
    "Hi! I'm interested in this role. Based on my experience and skills, "
    "I believe I would be a great fit for your team."
)
