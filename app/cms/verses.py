"""Bible-verse citation detection.

Splits free text into plain and citation parts so clients can render
citations such as "John 3:16" or "1 Corinthians 13:4-7" as links.
"""

import re
from dataclasses import dataclass

BOOKS = [
    "Genesis", "Exodus", "Leviticus", "Numbers", "Deuteronomy", "Joshua", "Judges",
    "Ruth", "Samuel", "Kings", "Chronicles", "Ezra", "Nehemiah", "Esther", "Job",
    "Psalms", "Psalm", "Proverbs", "Ecclesiastes", "Isaiah", "Jeremiah",
    "Lamentations", "Ezekiel", "Daniel", "Hosea", "Joel", "Amos", "Obadiah", "Jonah",
    "Micah", "Nahum", "Habakkuk", "Zephaniah", "Haggai", "Zechariah", "Malachi",
    "Matthew", "Mark", "Luke", "John", "Acts", "Romans", "Corinthians", "Galatians",
    "Ephesians", "Philippians", "Colossians", "Thessalonians", "Timothy", "Titus",
    "Philemon", "Hebrews", "James", "Peter", "Jude", "Revelation",
]

# Longest names first so "Philemon" wins over a shorter prefix
_BOOK_ALTERNATION = "|".join(sorted(BOOKS, key=len, reverse=True))

VERSE_PATTERN = re.compile(
    rf"(?<![\w])(?:[1-3]\s*)?(?:{_BOOK_ALTERNATION})\s*\d+:\d+(?:\s*-\s*\d+)?(?![\w])",
    re.IGNORECASE,
)


@dataclass
class TextPart:
    type: str  # "text" or "verse"
    content: str


def split_verse_citations(text: str) -> list[TextPart]:
    """Split text into ordered text/verse parts that concatenate back to `text`."""
    parts: list[TextPart] = []
    last_index = 0

    for match in VERSE_PATTERN.finditer(text):
        if match.start() > last_index:
            parts.append(TextPart("text", text[last_index:match.start()]))
        parts.append(TextPart("verse", match.group(0)))
        last_index = match.end()

    if last_index < len(text):
        parts.append(TextPart("text", text[last_index:]))

    return parts or [TextPart("text", text)]


def find_verse_citations(text: str) -> list[str]:
    return [m.group(0) for m in VERSE_PATTERN.finditer(text)]
