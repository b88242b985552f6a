"""Email bodies for task and status notifications."""

from datetime import datetime, timezone
from html import escape

from seoworks_webhooks.domain.model import (
    CompletedTaskRecord,
    RequestStatus,
    SeoRequest,
    User,
)
from seoworks_webhooks.domain.notifications import EmailMessage

CONTENT_TASK_TYPES = frozenset({"page", "blog", "gbp_post", "gbp-post"})

CONTENT_TYPE_NAMES = {
    "page": "New Page",
    "blog": "Blog Post",
    "gbp_post": "Google Business Profile Post",
    "gbp-post": "Google Business Profile Post",
    "improvement": "Website Improvement",
    "maintenance": "Website Update",
}

STATUS_MESSAGES = {
    RequestStatus.IN_PROGRESS: "Your request is now being worked on by our team.",
    RequestStatus.COMPLETED: "Great news! Your request has been completed.",
    RequestStatus.CANCELLED: "Your request has been cancelled.",
}


def is_content_task(task_type: str) -> bool:
    return task_type.lower() in CONTENT_TASK_TYPES


def _greeting_name(user: User) -> str:
    return (user.name or "").strip() or "there"


def _layout(content: str) -> str:
    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\"></head>"
        f"<body><div class=\"container\">{content}</div></body></html>"
    )


def _task_html(task: CompletedTaskRecord) -> str:
    link = f' | <a href="{escape(task.url)}">View Content</a>' if task.url else ""
    return (
        '<div class="task-item">'
        f'<div class="task-title">{escape(task.title)}</div>'
        f'<div class="task-meta">Type: {escape(task.type)}{link}</div>'
        "</div>"
    )


def _task_text(task: CompletedTaskRecord) -> str:
    line = f"- {task.title} ({task.type})"
    return f"{line} {task.url}" if task.url else line


def _progress_lines(request: SeoRequest) -> list[str]:
    counts = [
        ("Pages Completed", request.pages_completed),
        ("Blogs Completed", request.blogs_completed),
        ("GBP Posts Completed", request.gbp_posts_completed),
        ("Improvements Completed", request.improvements_completed),
    ]
    return [f"{label}: {count}" for label, count in counts if count > 0]


def task_completed_template(
    request: SeoRequest, user: User, task: CompletedTaskRecord, app_url: str
) -> EmailMessage:
    """Generic notice for a completed task that is not a content piece."""
    package = request.package_type.value if request.package_type else "N/A"
    progress = _progress_lines(request)
    progress_html = "".join(f"<li>{escape(line)}</li>" for line in progress)
    html = _layout(
        "<h2>Task Completed</h2>"
        f"<p>Hi {escape(_greeting_name(user))},</p>"
        "<p>A task for your SEO request has been completed!</p>"
        "<h3>Request Details:</h3>"
        f'<div class="task-item"><div class="task-title">{escape(request.title)}</div>'
        f'<div class="task-meta">Package: {escape(package)} | '
        f"Status: {escape(request.status.value)}</div></div>"
        f"<h3>Completed Task:</h3>{_task_html(task)}"
        f"<h3>Progress This Month:</h3><ul>{progress_html}</ul>"
        f'<a href="{escape(app_url)}/requests" class="button">View All Requests</a>'
    )
    text = "\n".join(
        [
            f"Hi {_greeting_name(user)},",
            "",
            "A task for your SEO request has been completed!",
            f"Request: {request.title} (Package: {package}, Status: {request.status.value})",
            "Completed task:",
            _task_text(task),
            *progress,
            "",
            f"View all requests: {app_url}/requests",
        ]
    )
    return EmailMessage(subject=f"Task Completed: {task.title}", html=html, text=text)


def content_added_template(
    request: SeoRequest, user: User, task: CompletedTaskRecord, app_url: str
) -> EmailMessage:
    """Notice used for pages, blog posts and GBP posts published for the user."""
    content_type = CONTENT_TYPE_NAMES.get(task.type.lower(), "Content")
    action = "updated on" if task.type.lower() in ("improvement", "maintenance") else "added to"
    year = datetime.now(timezone.utc).year
    view = (
        f'<p><a href="{escape(task.url)}" class="button">View {escape(content_type)}</a></p>'
        if task.url
        else ""
    )
    html = _layout(
        f"<h2>{escape(content_type)} {action} your website</h2>"
        f"<p>Hi {escape(_greeting_name(user))},</p>"
        f"<p>We just published new work for <strong>{escape(request.title)}</strong>:</p>"
        f"{_task_html(task)}{view}"
        "<p><em>Your SEO team is continuously working to improve your online presence. "
        "We'll notify you each time new content is added.</em></p>"
        f'<p><a href="{escape(app_url)}/requests">View All Requests</a></p>'
        f"<p>&copy; {year}</p>"
    )
    text = "\n".join(
        [
            f"Hi {_greeting_name(user)},",
            "",
            f"A {content_type} was {action} your website for {request.title}:",
            _task_text(task),
            "",
            f"View all requests: {app_url}/requests",
        ]
    )
    return EmailMessage(
        subject=f'{content_type} Added: "{task.title}"', html=html, text=text
    )


def status_changed_template(
    request: SeoRequest,
    user: User,
    old_status: RequestStatus,
    new_status: RequestStatus,
    app_url: str,
) -> EmailMessage:
    message = STATUS_MESSAGES.get(new_status, "The status of your request has changed.")
    completed = new_status is RequestStatus.COMPLETED and bool(request.completed_tasks)
    tasks_html = (
        "<h3>Completed Tasks:</h3>" + "".join(_task_html(t) for t in request.completed_tasks)
        if completed
        else ""
    )
    html = _layout(
        "<h2>Request Status Updated</h2>"
        f"<p>Hi {escape(_greeting_name(user))},</p>"
        f"<p>{escape(message)}</p>"
        f'<div class="task-item"><div class="task-title">{escape(request.title)}</div>'
        f'<div class="task-meta">Status changed from {old_status.value} '
        f"to {new_status.value}</div></div>"
        f"{tasks_html}"
        f'<a href="{escape(app_url)}/requests" class="button">View Request</a>'
    )
    text_lines = [
        f"Hi {_greeting_name(user)},",
        "",
        message,
        f"{request.title}: {old_status.value} -> {new_status.value}",
    ]
    if completed:
        text_lines += ["", "Completed tasks:", *(_task_text(t) for t in request.completed_tasks)]
    text_lines += ["", f"View request: {app_url}/requests"]
    verb = "Completed" if new_status is RequestStatus.COMPLETED else "Updated"
    return EmailMessage(
        subject=f"Request {verb}: {request.title}", html=html, text="\n".join(text_lines)
    )
