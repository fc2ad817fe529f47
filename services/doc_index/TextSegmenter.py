"""Markdown to plain text chunks.

Documents with "## " headings are cut into one section per heading (text before
the first heading forms a leading section). Documents without headings are cut
into packed paragraphs. Text that does not fit into one chunk is packed
sentence by sentence, carrying ``overlap`` characters of trailing context into
the next piece.
"""

import re

from shared.helper.HelperConfig import HelperConfig
from shared.models.chunk import ChunkType, TextSegment

_HEADING = re.compile(r"^##\s+(.+)$", re.MULTILINE)
_CODE_FENCE = re.compile(r"```([^\n`]*)\n[\s\S]*?```")
_INLINE_CODE = re.compile(r"`([^`\n]+)`")
_IMAGE = re.compile(r"!\[[^\]]*\]\([^)]*\)")
_LINK = re.compile(r"\[([^\]]+)\]\([^)]*\)")
_HEADING_MARKER = re.compile(r"^#{1,6}\s+", re.MULTILINE)
_BOLD = re.compile(r"\*\*([^*]+)\*\*")
_ITALIC = re.compile(r"\*([^*\n]+)\*")
_BOLD_UNDERSCORE = re.compile(r"__([^_]+)__")
_ITALIC_UNDERSCORE = re.compile(r"(?<!\w)_([^_\n]+)_(?!\w)")
_STRIKETHROUGH = re.compile(r"~~([^~]+)~~")
_QUOTE_MARKER = re.compile(r"^>\s?", re.MULTILINE)
_BULLET_MARKER = re.compile(r"^[ \t]*[*\-+]\s+", re.MULTILINE)
_NUMBER_MARKER = re.compile(r"^[ \t]*\d+\.\s+", re.MULTILINE)
_INLINE_WHITESPACE = re.compile(r"[ \t]+")
_MULTI_BLANK_LINES = re.compile(r"\n{3,}")
_PARAGRAPH_BREAK = re.compile(r"\n{2,}")
# CJK terminators always end a sentence, latin ones only before whitespace
_SENTENCE_END = re.compile(r"[。！？]|[.!?](?=\s|$)|\n")


def strip_markdown(markdown: str) -> str:
    """Reduce markdown to plain text.

    Fenced code becomes a language tag such as "[python code]", images are
    removed, links keep their label, emphasis/quote/list markers are dropped.
    """

    def _summarize_fence(match: re.Match) -> str:
        language = match.group(1).strip()
        return f"[{language} code]" if language else "[code]"

    text = markdown.replace("\r\n", "\n").replace("\r", "\n")
    text = _CODE_FENCE.sub(_summarize_fence, text)
    text = _INLINE_CODE.sub(r"\1", text)
    text = _IMAGE.sub("", text)
    text = _LINK.sub(r"\1", text)
    text = _HEADING_MARKER.sub("", text)
    text = _BOLD.sub(r"\1", text)
    text = _ITALIC.sub(r"\1", text)
    text = _BOLD_UNDERSCORE.sub(r"\1", text)
    text = _ITALIC_UNDERSCORE.sub(r"\1", text)
    text = _STRIKETHROUGH.sub(r"\1", text)
    text = _QUOTE_MARKER.sub("", text)
    text = _BULLET_MARKER.sub("", text)
    text = _NUMBER_MARKER.sub("", text)
    text = _INLINE_WHITESPACE.sub(" ", text)
    text = _MULTI_BLANK_LINES.sub("\n\n", text)
    return text.strip()


class TextSegmenter:
    """Cuts markdown documents into ordered TextSegments.

    A heading section or a whole heading-less document that fits into
    ``target_size`` characters is kept as one piece. Only pieces produced by
    splitting a longer text are subject to ``min_size``.
    """

    def __init__(self, target_size: int = 500, overlap: int = 100, min_size: int = 100):
        if target_size <= 0:
            raise ValueError(f"target_size must be > 0, got {target_size}.")
        if not 0 <= overlap < target_size:
            raise ValueError(f"overlap must be in [0, target_size), got {overlap} for target_size {target_size}.")
        if min_size < 0:
            raise ValueError(f"min_size must be >= 0, got {min_size}.")
        self.target_size = target_size
        self.overlap = overlap
        self.min_size = min_size

    @classmethod
    def from_config(cls, helper_config: HelperConfig) -> "TextSegmenter":
        """Build a segmenter from INDEX_CHUNK_SIZE, INDEX_CHUNK_OVERLAP and INDEX_MIN_CHUNK_SIZE."""
        return cls(
            target_size=helper_config.get_int_val("INDEX_CHUNK_SIZE", default=500, minimum=1),
            overlap=helper_config.get_int_val("INDEX_CHUNK_OVERLAP", default=100, minimum=0),
            min_size=helper_config.get_int_val("INDEX_MIN_CHUNK_SIZE", default=100, minimum=0),
        )

    ##########################################
    ################# SEGMENT ################
    ##########################################

    def segment(self, markdown: str) -> list[TextSegment]:
        """Cut a markdown document into segments, heading sections first, paragraphs as fallback.

        Args:
            markdown (str): The document content.

        Returns:
            list[TextSegment]: Segments in document order, position = index in the list.
        """
        if not markdown or not markdown.strip():
            return []

        texts = self._split_by_headings(markdown)
        chunk_type = ChunkType.SECTION
        if not texts:
            texts = self._split_text(strip_markdown(markdown))
            chunk_type = ChunkType.PARAGRAPH

        return [
            TextSegment(text=text, chunk_type=chunk_type, position=position)
            for position, text in enumerate(texts)
        ]

    def _split_by_headings(self, markdown: str) -> list[str]:
        """One piece per "## " section, long sections re-split. Empty list if there are no usable sections."""
        matches = list(_HEADING.finditer(markdown))
        if not matches:
            return []

        spans = [markdown[:matches[0].start()]]
        for index, match in enumerate(matches):
            end = matches[index + 1].start() if index + 1 < len(matches) else len(markdown)
            spans.append(markdown[match.end():end])

        pieces: list[str] = []
        for span in spans:
            plain = strip_markdown(span)
            if plain:
                pieces.extend(self._split_text(plain))
        return pieces

    ##########################################
    ################# PACKING ################
    ##########################################

    def _split_text(self, text: str) -> list[str]:
        """Keep a fitting text whole, otherwise pack its paragraphs and drop pieces below min_size."""
        text = text.strip()
        if not text:
            return []
        if len(text) <= self.target_size:
            return [text]
        return [piece for piece in self._pack_paragraphs(text) if len(piece) >= self.min_size]

    def _pack_paragraphs(self, text: str) -> list[str]:
        """Merge consecutive paragraphs up to target_size, sentence-pack paragraphs that are too long."""
        pieces: list[str] = []
        current = ""
        for paragraph in _PARAGRAPH_BREAK.split(text):
            paragraph = paragraph.strip()
            if not paragraph:
                continue
            if len(paragraph) > self.target_size:
                if current:
                    pieces.append(current)
                    current = ""
                pieces.extend(self._pack_sentences(paragraph))
            elif current and len(current) + 2 + len(paragraph) <= self.target_size:
                current = f"{current}\n\n{paragraph}"
            else:
                if current:
                    pieces.append(current)
                current = paragraph
        if current:
            pieces.append(current)
        return pieces

    def _pack_sentences(self, text: str) -> list[str]:
        """Pack sentences up to target_size, starting each new piece with the last `overlap` characters of the previous one."""
        pieces: list[str] = []
        current = ""
        for sentence in self._split_sentences(text):
            if current and len(current) + len(sentence) > self.target_size:
                pieces.append(current.strip())
                current = current[-self.overlap:] if self.overlap else ""
                if len(current) + len(sentence) > self.target_size:
                    current = ""
            current += sentence
        if current.strip():
            pieces.append(current.strip())
        return pieces

    def _split_sentences(self, text: str) -> list[str]:
        """Split at sentence terminators and newlines, hard-wrapping sentences longer than target_size."""
        sentences: list[str] = []
        start = 0
        for match in _SENTENCE_END.finditer(text):
            sentences.append(text[start:match.end()])
            start = match.end()
        if start < len(text):
            sentences.append(text[start:])

        units: list[str] = []
        for sentence in sentences:
            if not sentence.strip():
                continue
            if len(sentence) <= self.target_size:
                units.append(sentence)
            else:
                units.extend(self._hard_wrap(sentence))
        return units

    def _hard_wrap(self, sentence: str) -> list[str]:
        """Cut an over-long sentence into target_size windows that overlap by `overlap` characters."""
        step = self.target_size - self.overlap
        windows = []
        for start in range(0, len(sentence), step):
            windows.append(sentence[start:start + self.target_size])
            if start + self.target_size >= len(sentence):
                break
        return windows
