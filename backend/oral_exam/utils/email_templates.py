"""
HTML bodies for the instructor report and the student confirmation (Hebrew, RTL).
"""
from html import escape
from typing import Optional, Tuple

from ..core.config import settings
from ..models.session import ExamSession
from .timezone import format_hebrew_date, format_local_time

VERDICTS_HE = {
    "correct": ("נכון", "✅"),
    "partial": ("חלקי", "⚠️"),
    "wrong": ("שגוי", "❌"),
}

DIMENSION_LABELS_HE = (
    ("accuracy", "דיוק"),
    ("structure", "מבנה"),
    ("terminology", "מינוח"),
    ("logic", "לוגיקה"),
    ("alignment", "התאמה"),
)

STYLE = """
        body { font-family: Arial, sans-serif; line-height: 1.6; direction: rtl; }
        .container { max-width: 700px; margin: 20px auto; padding: 20px; border: 1px solid #ddd; }
        .header { background: #4CAF50; color: white; padding: 15px; text-align: center; }
        .section { margin: 20px 0; padding: 15px; background: #f9f9f9; }
        .question { border-right: 4px solid #2196F3; padding-right: 10px; margin: 15px 0; }
        .score { font-size: 1.3em; font-weight: bold; }
        .verdict-correct { color: #4CAF50; }
        .verdict-partial { color: #FF9800; }
        .verdict-wrong { color: #F44336; }
        .dimensions { font-size: 0.9em; color: #666; }
        .button { display: inline-block; padding: 12px 24px; background: #2196F3; color: white; text-decoration: none; border-radius: 5px; margin: 10px 0; }
"""


def verdict_he(verdict: Optional[str]) -> Tuple[str, str]:
    return VERDICTS_HE.get(verdict or "", ("לא ידוע", "❓"))


def format_dimension(value) -> str:
    if value is None:
        return "N/A"
    return f"{round(float(value) * 100)}%"


def dashboard_link(session_id: str) -> str:
    return f"{settings.app_url.rstrip('/')}/admin/sessions/{session_id}"


def _answer_block(answer) -> str:
    rubric = answer.rubric or {}
    verdict = answer.verdict or "wrong"
    text, emoji = verdict_he(verdict)
    dimensions = " | ".join(
        f"{label}: {format_dimension(rubric.get(key))}" for key, label in DIMENSION_LABELS_HE
    )
    return f"""
            <div class="question">
                <h4>שאלה {answer.position} (מזהה: {answer.question_id})</h4>
                <p><strong>שאלה:</strong> {escape(answer.question_text or '')}</p>
                <p><strong>תמלול תשובת הסטודנט:</strong></p>
                <p style="background: #fff; padding: 10px; border-radius: 5px;">{escape(answer.transcript or '')}</p>
                <p class="score verdict-{verdict}">{emoji} {text} ({answer.score or 0}/100)</p>
                <p class="dimensions">{dimensions}</p>
                <p><strong>רמז:</strong> {'כן' if answer.hint_used else 'לא'}</p>
                <p><em>{escape(rubric.get('short_explanation_he') or '')}</em></p>
            </div>"""


def instructor_subject(session: ExamSession) -> str:
    return f"✅ מבחן הושלם - {session.first_name} {session.last_name} ({session.id_last4})"


def render_instructor_email(session: ExamSession) -> str:
    questions = "".join(_answer_block(answer) for answer in session.answers)
    video_link = escape(session.video_link or "#", quote=True)
    return f"""<!DOCTYPE html>
<html dir="rtl" lang="he">
<head>
    <meta charset="UTF-8">
    <style>{STYLE}</style>
</head>
<body>
    <div class="container">
        <div class="header"><h2>✅ מבחן בעל-פה הושלם</h2></div>

        <div class="section">
            <h3>פרטי סטודנט</h3>
            <p><strong>שם:</strong> {escape(session.first_name)} {escape(session.last_name)}</p>
            <p><strong>ת"ז:</strong> ****{escape(session.id_last4)}</p>
            <p><strong>תאריך:</strong> {format_hebrew_date(session.started_at)}</p>
            <p><strong>משך מבחן:</strong> {session.duration_minutes or 0} דקות</p>
        </div>

        <div class="section">
            <h3>📊 תוצאות אוטומטיות</h3>{questions}
        </div>

        <div class="section">
            <h3>📈 סיכום</h3>
            <p><strong>ציון כולל: {session.total_score_0_100 or 0}/100</strong></p>
            <p><strong>שאלות נכונות: {session.total_correct or 0}/{len(session.answers)}</strong></p>
            <p><a href="{video_link}" class="button">🎥 צפייה בהקלטה</a></p>
        </div>

        <div style="background: #fff3cd; padding: 15px; border-radius: 5px; margin: 20px 0;">
            <p><strong>⚠️ שים לב:</strong> זהו ציון אוטומטי ראשוני. נא לבדוק בדשבורד ולאשר או לערוך:</p>
            <p><a href="{dashboard_link(session.id)}" class="button">👉 לדשבורד ניהול</a></p>
        </div>
    </div>
</body>
</html>"""


def student_subject(session: ExamSession) -> str:
    return f"✅ מבחן בעל-פה התקבל - {session.first_name}"


def render_student_email(session: ExamSession) -> str:
    return f"""<!DOCTYPE html>
<html dir="rtl" lang="he">
<head>
    <meta charset="UTF-8">
    <style>body {{ font-family: Arial, sans-serif; line-height: 1.6; direction: rtl; }}</style>
</head>
<body>
    <div style="max-width: 600px; margin: 20px auto; padding: 20px;">
        <p>שלום {escape(session.first_name)},</p>
        <p>תודה על השתתפותך במבחן בעל-פה.</p>
        <p>✅ <strong>המבחן שלך התקבל בהצלחה</strong> ב-{format_hebrew_date(session.started_at)} בשעה {format_local_time(session.started_at)}.</p>
        <p>התוצאות יעובדו ויישלחו אליך במייל בהמשך (עד 48 שעות).</p>
        <p>במידה ויש שאלות, ניתן לפנות למרצה:<br>
        <a href="mailto:{escape(settings.instructor_email, quote=True)}">{escape(settings.instructor_email)}</a></p>
        <p>בהצלחה,<br>צוות הקורס</p>
    </div>
</body>
</html>"""
