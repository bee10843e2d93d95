import uuid
from datetime import date, datetime, timezone

DB_TIME_FORMAT = '%Y-%m-%d %H:%M:%S'


# TIME =======================================================

def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_db_time(value: datetime) -> str:
    return as_utc(value).strftime(DB_TIME_FORMAT)


def from_db_time(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.strptime(value, DB_TIME_FORMAT).replace(tzinfo=timezone.utc)


def utc_day(value: datetime) -> date:
    """Calendar day of a timestamp in the reference timezone (UTC)."""
    return as_utc(value).date()


def parse_iso(value: str) -> datetime:
    return as_utc(datetime.fromisoformat(value.replace('Z', '+00:00')))


def new_id() -> str:
    return uuid.uuid4().hex


# CARD TEXT ==================================================

def parse_text(content: str) -> dict[str, str]:
    """
    returns: {'question': str, 'answer': str}

    "question | answer" splits on the first bar; otherwise the first line is
    the question and the remaining lines are the answer.
    """
    text = content.strip()

    if '|' in text:
        parts = text.split('|', 1)
        return {'question': parts[0].strip(), 'answer': parts[1].strip()}

    if '\n' in text:
        lines = [l.strip() for l in text.split('\n') if l.strip()]
        if len(lines) >= 2:
            return {'question': lines[0], 'answer': '\n'.join(lines[1:])}

    return {'question': text, 'answer': ''}


def parse_deck_text(content: str) -> dict[str, str]:
    """returns: {'name': str, 'description': str} from "name | description"."""
    name, _, description = content.strip().partition('|')
    return {'name': name.strip(), 'description': description.strip()}


def normalize_tags(tags) -> list[str]:
    """Strip, drop blanks and duplicates, keep first-seen order."""
    seen: list[str] = []
    for tag in tags or ():
        tag = str(tag).strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen
