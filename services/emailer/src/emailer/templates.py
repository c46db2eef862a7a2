from __future__ import annotations

from dataclasses import dataclass

from common.utils import normalize_whitespace

SIGNATURE = "Best regards,\nThe Career Navigator Team"
DEFAULT_GREETING_NAME = "Career Explorer"
MESSAGE_TYPE_PREFIXES = {
    "urgent": "[Urgent] ",
    "announcement": "[Announcement] ",
}


@dataclass(frozen=True)
class EmailContent:
    subject: str
    body: str


def build_custom_email(subject: str, message: str, message_type: str = "general") -> EmailContent:
    prefix = MESSAGE_TYPE_PREFIXES.get(message_type, "")
    return EmailContent(
        subject=f"{prefix}{normalize_whitespace(subject)}",
        body=f"{message.strip()}\n\n{SIGNATURE}\n",
    )


def build_job_alert(
    job_title: str,
    company_name: str,
    job_description: str,
    apply_link: str | None = None,
) -> EmailContent:
    subject = normalize_whitespace(f"New Job Alert: {job_title} at {company_name}")
    lines = [
        subject,
        "",
        "We found a job that matches your profile and preferences.",
        "",
        "Job Details:",
        f"- Position: {job_title}",
        f"- Company: {company_name}",
        f"- Description: {job_description.strip()}",
    ]
    if apply_link:
        lines.extend(["", f"Apply now: {apply_link}"])
    lines.extend(["", "Good luck with your application!", "", SIGNATURE])
    return EmailContent(subject=subject, body="\n".join(lines) + "\n")


def build_career_guidance(
    message: str,
    *,
    user_name: str | None = None,
    tips: list[str] | None = None,
) -> EmailContent:
    lines = [
        f"Hello {user_name or DEFAULT_GREETING_NAME}!",
        "",
        "Here's some personalized career guidance:",
        "",
        message.strip(),
    ]
    cleaned_tips = [tip.strip() for tip in tips or [] if tip.strip()]
    if cleaned_tips:
        lines.extend(["", "Additional Tips:"])
        lines.extend(f"- {tip}" for tip in cleaned_tips)
    lines.extend(
        [
            "",
            "Remember, every small step counts towards your career success!",
            "",
            SIGNATURE,
        ]
    )
    return EmailContent(
        subject="Personalized Career Guidance from Career Navigator",
        body="\n".join(lines) + "\n",
    )
