"""Email templates for Orah School notifications.

Every render function returns ``(html, plain_text)``. User-supplied values
(names, lesson titles) are HTML-escaped before they reach the markup.
"""

from datetime import datetime
from html import escape


# ==============================================================================
# Base Template
# ==============================================================================

BASE_TEMPLATE = """
<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{title} - Orah School</title>
</head>
<body style="margin: 0; padding: 0; background-color: #F9FAFB; font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Arial, sans-serif;">
  <table role="presentation" width="100%" cellpadding="0" cellspacing="0" style="background-color: #F9FAFB;">
    <tr>
      <td align="center" style="padding: 40px 20px;">
        <table role="presentation" width="600" cellpadding="0" cellspacing="0" style="background-color: #FFFFFF; border-radius: 12px; max-width: 600px;">
          <!-- Header -->
          <tr>
            <td style="padding: 24px 40px; background-color: {accent}; border-radius: 12px 12px 0 0;">
              <h1 style="margin: 0; font-size: 22px; font-weight: 600; color: #FFFFFF;">
                {title}
              </h1>
            </td>
          </tr>

          <!-- Content -->
          <tr>
            <td style="padding: 32px 40px;">
              {content}
            </td>
          </tr>

          <!-- Footer -->
          <tr>
            <td style="padding: 20px 40px; background-color: #F3F4F6; border-radius: 0 0 12px 12px;">
              <p style="margin: 0; font-size: 12px; color: #6B7280; text-align: center; line-height: 1.6;">
                &copy; {year} Orah School.<br>
                {footer}
              </p>
            </td>
          </tr>
        </table>
      </td>
    </tr>
  </table>
</body>
</html>
"""

BUTTON = """
<p style="margin: 24px 0 0;">
  <a href="{url}" style="display: inline-block; padding: 12px 24px; background-color: {color}; color: #FFFFFF; text-decoration: none; border-radius: 6px;">{label}</a>
</p>
"""

PLAIN_FOOTER = """
---
© {year} Orah School.
{footer}
"""


def _page(title: str, accent: str, content: str, footer: str) -> str:
    return BASE_TEMPLATE.format(
        title=title,
        accent=accent,
        content=content,
        footer=footer,
        year=datetime.now().year,
    )


def _days(n: int) -> str:
    return f"{n} day" if n == 1 else f"{n} days"


# ==============================================================================
# Template: Student Missed Lesson
# ==============================================================================

STUDENT_MISSED_CONTENT = """
<p style="margin: 0 0 16px; font-size: 16px; color: #374151;">Dear {student_name},</p>

<div style="background-color: #FFF3CD; border-left: 4px solid #FFC107; padding: 12px 16px; margin: 0 0 20px;">
  <strong>Important notice:</strong> you have a missed lesson that needs your attention.
</div>

<p style="margin: 0 0 8px;"><strong>Lesson:</strong> {lesson_title}</p>
<p style="margin: 0 0 16px;"><strong>Days overdue:</strong> {days}</p>

<p style="margin: 0 0 16px; font-size: 15px; color: #374151; line-height: 1.6;">
  You enrolled in this lesson {days} ago and have not started it yet.
  Please open it as soon as possible to stay on track.
</p>

<ul style="margin: 0 0 16px; color: #374151; line-height: 1.6;">
  <li>The lesson is now marked as "Missed" in your dashboard</li>
  <li>Your instructor has been notified</li>
  <li>You can still open and complete the lesson</li>
</ul>
{button}
"""

STUDENT_MISSED_FOOTER = "This is an automated message from the Orah School learning platform."


def student_missed_subject(lesson_title: str) -> str:
    return f"⚠️ Missed Topic Alert: {lesson_title}"


def render_student_missed(
    student_name: str, lesson_title: str, days_overdue: int, app_url: str
) -> tuple[str, str]:
    """Render the student-facing missed lesson alert.

    Returns:
        Tuple of (html_content, plain_text_content)
    """
    dashboard_url = f"{app_url}/student-dashboard"
    content = STUDENT_MISSED_CONTENT.format(
        student_name=escape(student_name),
        lesson_title=escape(lesson_title),
        days=_days(days_overdue),
        button=BUTTON.format(
            url=escape(dashboard_url), color="#007BFF", label="Go to My Dashboard"
        ),
    )
    html = _page("⚠️ Missed Topic Alert", "#FF6B6B", content, STUDENT_MISSED_FOOTER)

    plain_text = f"""
Missed Topic Alert - Orah School

Dear {student_name},

You have a missed lesson that needs your attention.

Lesson: {lesson_title}
Days overdue: {_days(days_overdue)}

You enrolled in this lesson {_days(days_overdue)} ago and have not started it yet.
- The lesson is now marked as "Missed" in your dashboard
- Your instructor has been notified
- You can still open and complete the lesson

Go to your dashboard: {dashboard_url}
{PLAIN_FOOTER.format(year=datetime.now().year, footer=STUDENT_MISSED_FOOTER)}"""
    return html, plain_text.strip()


# ==============================================================================
# Template: Instructor Missed Lesson Notice
# ==============================================================================

INSTRUCTOR_MISSED_CONTENT = """
<p style="margin: 0 0 16px; font-size: 16px; color: #374151;">Dear {instructor_name},</p>

<div style="background-color: #E7F3FF; border-left: 4px solid #2196F3; padding: 12px 16px; margin: 0 0 20px;">
  <strong>Attention required:</strong> a student in your lesson has missed it.
</div>

<div style="background-color: #F9FAFB; border-radius: 8px; padding: 16px; margin: 0 0 20px;">
  <p style="margin: 0 0 6px;"><strong>Student:</strong> {student_name}</p>
  <p style="margin: 0 0 6px;"><strong>Email:</strong> {student_email}</p>
  <p style="margin: 0 0 6px;"><strong>Lesson:</strong> {lesson_title}</p>
  <p style="margin: 0 0 6px;"><strong>Days overdue:</strong> {days}</p>
  <p style="margin: 0;"><strong>Status:</strong> Enrolled but not started</p>
</div>

<p style="margin: 0 0 16px; font-size: 15px; color: #374151; line-height: 1.6;">
  The enrollment has been marked as "Missed" and the student has been warned.
  Reaching out early helps students get back on track.
</p>
{button}
"""

INSTRUCTOR_MISSED_FOOTER = "Deadline checks run daily to keep you informed about student progress."


def instructor_missed_subject(student_name: str, lesson_title: str) -> str:
    return f"📊 Student Missed Topic: {student_name} - {lesson_title}"


def render_instructor_missed(
    instructor_name: str,
    student_name: str,
    student_email: str,
    lesson_title: str,
    days_overdue: int,
    app_url: str,
) -> tuple[str, str]:
    """Render the instructor-facing missed lesson notice.

    Returns:
        Tuple of (html_content, plain_text_content)
    """
    hub_url = f"{app_url}/instructor-hub"
    content = INSTRUCTOR_MISSED_CONTENT.format(
        instructor_name=escape(instructor_name),
        student_name=escape(student_name),
        student_email=escape(student_email),
        lesson_title=escape(lesson_title),
        days=_days(days_overdue),
        button=BUTTON.format(
            url=escape(hub_url), color="#28A745", label="View Analytics Dashboard"
        ),
    )
    html = _page(
        "📊 Student Missed Topic", "#17A2B8", content, INSTRUCTOR_MISSED_FOOTER
    )

    plain_text = f"""
Student Missed Topic - Orah School

Dear {instructor_name},

A student in your lesson has missed it.

Student: {student_name}
Email: {student_email}
Lesson: {lesson_title}
Days overdue: {_days(days_overdue)}
Status: Enrolled but not started

View your dashboard: {hub_url}
{PLAIN_FOOTER.format(year=datetime.now().year, footer=INSTRUCTOR_MISSED_FOOTER)}"""
    return html, plain_text.strip()


# ==============================================================================
# Template: Lesson Reminder
# ==============================================================================

REMINDER_CONTENT = """
<p style="margin: 0 0 16px; font-size: 16px; color: #374151;">Dear {student_name},</p>

<p style="margin: 0 0 16px; font-size: 15px; color: #374151; line-height: 1.6;">
  You haven't completed the following lesson yet:
</p>

<p style="margin: 0 0 8px;"><strong>Lesson:</strong> {lesson_title}</p>
<p style="margin: 0 0 16px;"><strong>Current progress:</strong> {progress}%</p>

<p style="margin: 0 0 16px; font-size: 15px; color: #374151;">{encouragement}</p>
{button}
"""

REMINDER_FOOTER = "Reminders are sent weekly while a lesson is unfinished."


def reminder_subject(lesson_title: str) -> str:
    return f"Reminder: Complete Your Lesson - {lesson_title}"


def _encouragement(progress: int) -> str:
    if progress == 0:
        return "You have not started this lesson yet. Get started today!"
    return f"You are {progress}% of the way there! Keep going!"


def render_lesson_reminder(
    student_name: str, lesson_title: str, progress: int, app_url: str
) -> tuple[str, str]:
    """Render the weekly lesson reminder.

    Returns:
        Tuple of (html_content, plain_text_content)
    """
    dashboard_url = f"{app_url}/student-dashboard"
    content = REMINDER_CONTENT.format(
        student_name=escape(student_name),
        lesson_title=escape(lesson_title),
        progress=progress,
        encouragement=_encouragement(progress),
        button=BUTTON.format(
            url=escape(dashboard_url), color="#007BFF", label="Continue Learning"
        ),
    )
    html = _page("📧 Lesson Reminder", "#6366F1", content, REMINDER_FOOTER)

    plain_text = f"""
Lesson Reminder - Orah School

Dear {student_name},

You haven't completed the following lesson yet:

Lesson: {lesson_title}
Current progress: {progress}%
Target: 100%

{_encouragement(progress)}

Log in to continue: {dashboard_url}
{PLAIN_FOOTER.format(year=datetime.now().year, footer=REMINDER_FOOTER)}"""
    return html, plain_text.strip()
