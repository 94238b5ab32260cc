from __future__ import annotations

import math
from dataclasses import dataclass

from sqlalchemy.orm import Session

from relohire.models.job import ExperienceLevel, Job
from relohire.models.user import User

COUNTRY_POINTS = 30
SKILL_POINTS = 40
EXPERIENCE_POINTS = 20
VISA_POINTS = 10
MAX_POINTS = COUNTRY_POINTS + SKILL_POINTS + EXPERIENCE_POINTS + VISA_POINTS

MIN_MATCH_PERCENT = 50
CANDIDATE_LIMIT = 20


@dataclass
class JobMatch:
    job: Job
    match_score: int


def experience_level_for(years: int | None) -> str:
    y = int(years or 0)
    if y < 2:
        return ExperienceLevel.entry.value
    if y < 5:
        return ExperienceLevel.mid.value
    if y < 10:
        return ExperienceLevel.senior.value
    return ExperienceLevel.executive.value


def _clean(values) -> list[str]:
    return [str(v).strip() for v in (values or []) if str(v).strip()]


def _skills_overlap(user_skill: str, job_skill: str) -> bool:
    a, b = user_skill.lower(), job_skill.lower()
    return a in b or b in a


def score_job(user: User, job: Job) -> int:
    """Percentage match (0-100) between a candidate profile and a job."""
    score = 0.0

    if job.country in _clean(user.preferred_countries):
        score += COUNTRY_POINTS

    user_skills = _clean(user.skills)
    job_skills = _clean(job.skills)
    if user_skills and job_skills:
        matching = [s for s in user_skills if any(_skills_overlap(s, js) for js in job_skills)]
        score += min(len(matching) / max(len(job_skills), 1) * SKILL_POINTS, SKILL_POINTS)

    level = experience_level_for(user.experience_years)
    if job.experience_level in (level, ExperienceLevel.entry.value):
        score += EXPERIENCE_POINTS

    if job.visa_sponsorship:
        score += VISA_POINTS

    # Half-up rounding.
    return int(math.floor(score / MAX_POINTS * 100 + 0.5))


def candidate_jobs(db: Session, user: User, *, limit: int = CANDIDATE_LIMIT) -> list[Job]:
    qry = db.query(Job).filter(Job.is_active.is_(True))

    countries = _clean(user.preferred_countries)
    if countries:
        qry = qry.filter(Job.country.in_(countries))

    if user.experience_years is not None:
        qry = qry.filter(
            Job.experience_level.in_([ExperienceLevel.entry.value, experience_level_for(user.experience_years)])
        )

    jobs = qry.order_by(Job.created_at.desc(), Job.id.desc()).all()

    # Skill prefilter is an exact, case-insensitive overlap.
    skills = {s.lower() for s in _clean(user.skills)}
    if skills:
        jobs = [j for j in jobs if skills & {s.lower() for s in _clean(j.skills)}]

    return jobs[:limit]


def find_matches(db: Session, user: User, *, limit: int = CANDIDATE_LIMIT) -> list[JobMatch]:
    matches = [JobMatch(job=job, match_score=score_job(user, job)) for job in candidate_jobs(db, user, limit=limit)]
    kept = [m for m in matches if m.match_score >= MIN_MATCH_PERCENT]
    kept.sort(key=lambda m: m.match_score, reverse=True)
    return kept
