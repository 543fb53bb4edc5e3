"""
Extração de conteúdo de páginas de documentação.

HTML é processado com BeautifulSoup; markdown/texto puro (README raw do
GitHub) é processado por linhas e blocos ``` cercados.
"""

import json
import logging
import re
from typing import Dict, List, Optional, Tuple

from bs4 import BeautifulSoup

from .models import ExtractedData, TargetType

logger = logging.getLogger(__name__)

INSTALL_KEYWORDS = ["npm install", "pip install", "yarn add", "pnpm add", "go get", "docker pull", "npx "]
INSTALL_PATTERNS = [
    re.compile(r"npm\s+install[^\n]*", re.IGNORECASE),
    re.compile(r"pip\s+install[^\n]*", re.IGNORECASE),
    re.compile(r"yarn\s+add[^\n]*", re.IGNORECASE),
    re.compile(r"pnpm\s+add[^\n]*", re.IGNORECASE),
    re.compile(r"go\s+get[^\n]*", re.IGNORECASE),
    re.compile(r"docker\s+pull[^\n]*", re.IGNORECASE),
]
CONFIG_FENCE = re.compile(r"```(json|ya?ml|toml|ini)\s*\n(.*?)```", re.IGNORECASE | re.DOTALL)
CODE_FENCE = re.compile(r"```([\w+-]*)\s*\n(.*?)```", re.DOTALL)
MD_HEADING = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$", re.MULTILINE)
ENV_VAR = re.compile(r"\b[A-Z][A-Z0-9]*(?:_[A-Z0-9]+)+\b")
CREDENTIAL_WORDS = re.compile(r"\b(api[_\s]?key|access[_\s]token|token|secret|password)\b", re.IGNORECASE)

SETUP_HEADINGS = ["setup", "install", "configur", "initialize", "getting started", "usage"]
TROUBLE_HEADINGS = ["troubleshoot", "trouble", "error", "issue", "problem", "fix", "solution", "faq"]
CREDENTIAL_MARKERS = ("API", "KEY", "TOKEN", "SECRET", "PASSWORD")

HTML_MAIN_SELECTORS = {
    TargetType.NPM_DOCS: ["#readme", ".package-readme", ".package-description", "main"],
    TargetType.DOCUMENTATION: ["main", "article", ".content", ".documentation", ".markdown-body"],
    TargetType.GITHUB_README: ["article.markdown-body", ".markdown-body", "main"],
    TargetType.GENERAL: ["main", "article", ".content", ".readme"],
}


def _unique(values: List[str]) -> List[str]:
    return list(dict.fromkeys(v for v in values if v))


def is_installation_command(code: str) -> bool:
    lower = code.lower()
    return any(k in lower for k in INSTALL_KEYWORDS)


def is_json_configuration(code: str) -> bool:
    try:
        return isinstance(json.loads(code), (dict, list))
    except ValueError:
        return False


def determine_content_type(url: str, target_type: Optional[TargetType]) -> str:
    if target_type == TargetType.GITHUB_README:
        return "github"
    if target_type == TargetType.NPM_DOCS:
        return "npm"
    if target_type == TargetType.DOCUMENTATION:
        return "documentation"

    lower = url.lower()
    if ("github.com" in lower or "githubusercontent.com" in lower) and "readme" in lower:
        return "github"
    if "npmjs.com" in lower:
        return "npm"
    if "docs" in lower or "documentation" in lower:
        return "documentation"
    if "readme" in lower:
        return "readme"
    return "general"


def is_markup(content_type_header: str, body: str) -> bool:
    """True se o corpo deve ser processado como HTML."""
    header = (content_type_header or "").lower()
    if "html" in header or "xml" in header:
        return True
    if header.startswith("text/plain") or "markdown" in header:
        return False
    return body.lstrip()[:15].lower().startswith(("<!doctype", "<html"))


def extract_credentials(content: str) -> List[str]:
    found = [v for v in ENV_VAR.findall(content) if any(m in v for m in CREDENTIAL_MARKERS)]
    found += [re.sub(r"[\s]+", "_", m.lower()) for m in CREDENTIAL_WORDS.findall(content)]
    return _unique(found)


def _text_matches(content: str) -> List[str]:
    return [m.group(0).strip() for p in INSTALL_PATTERNS for m in p.finditer(content)]


# --- Markdown / texto puro ---

def _markdown_sections(text: str) -> List[Tuple[str, str]]:
    """(título, corpo) por heading markdown."""
    headings = list(MD_HEADING.finditer(text))
    sections = []
    for i, match in enumerate(headings):
        end = headings[i + 1].start() if i + 1 < len(headings) else len(text)
        sections.append((match.group(2).strip(), text[match.end():end].strip()))
    return sections


def extract_from_markdown(text: str) -> Tuple[str, ExtractedData, Dict[str, Optional[str]]]:
    title_match = MD_HEADING.search(text)
    title = title_match.group(2).strip() if title_match else "Untitled"

    blocks = [(lang.lower(), code.strip()) for lang, code in CODE_FENCE.findall(text)]
    sections = _markdown_sections(text)

    data = ExtractedData(
        installation_commands=_unique(
            [code for _, code in blocks if is_installation_command(code)] + _text_matches(text)
        ),
        configuration_examples=_unique(
            [code for lang, code in blocks if lang == "json" and is_json_configuration(code)]
            + [code.strip() for _, code in CONFIG_FENCE.findall(text)]
        ),
        setup_instructions=_unique(
            [body for heading, body in sections if any(k in heading.lower() for k in SETUP_HEADINGS)]
        ),
        required_credentials=extract_credentials(text),
        code_examples=_unique([code for _, code in blocks if len(code) > 50]),
        troubleshooting=_unique(
            [body for heading, body in sections if any(k in heading.lower() for k in TROUBLE_HEADINGS)]
        ),
    )
    return title, data, {"last_modified": None, "language": None}


# --- HTML ---

def _section_after(heading) -> str:
    parts = []
    for sibling in heading.find_next_siblings():
        if sibling.name and re.fullmatch(r"h[1-6]", sibling.name):
            break
        parts.append(sibling.get_text(separator="\n", strip=True))
    return "\n".join(p for p in parts if p).strip()


def _last_modified(soup: BeautifulSoup) -> Optional[str]:
    for selector in (
        'meta[property="article:modified_time"]',
        'meta[name="last-modified"]',
        'meta[http-equiv="last-modified"]',
        ".last-modified",
        ".updated",
        "relative-time",
    ):
        element = soup.select_one(selector)
        if element is not None:
            value = element.get("content") or element.get("datetime") or element.get_text(strip=True)
            if value:
                return value.strip()
    return None


def _language(soup: BeautifulSoup) -> Optional[str]:
    html = soup.find("html")
    if html is not None and html.get("lang"):
        return html.get("lang")
    meta = soup.select_one('meta[name="language"]')
    return meta.get("content") if meta is not None else None


def extract_from_html(
    html: str,
    target_type: Optional[TargetType]
) -> Tuple[str, str, ExtractedData, Dict[str, Optional[str]]]:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()

    title = ""
    for selector in ("title", "h1", "h2"):
        element = soup.find(selector)
        if element is not None and element.get_text(strip=True):
            title = element.get_text(strip=True)
            break

    root = None
    for selector in HTML_MAIN_SELECTORS.get(target_type or TargetType.GENERAL, []):
        root = soup.select_one(selector)
        if root is not None and root.get_text(strip=True):
            break
        root = None
    root = root or soup.body or soup
    content = root.get_text(separator="\n", strip=True)

    code_blocks = [c.get_text().strip() for c in root.select("pre code, pre")]
    inline_code = [c.get_text().strip() for c in root.find_all("code")]
    headings = root.find_all(re.compile(r"^h[1-6]$"))

    data = ExtractedData(
        installation_commands=_unique(
            [c for c in code_blocks + inline_code if is_installation_command(c) and "\n" not in c.strip()]
            + _text_matches(content)
        ),
        configuration_examples=_unique([c for c in code_blocks if is_json_configuration(c)]),
        setup_instructions=_unique([
            _section_after(h) for h in headings
            if any(k in h.get_text().lower() for k in SETUP_HEADINGS)
        ]),
        required_credentials=extract_credentials(content),
        code_examples=_unique([c for c in code_blocks if len(c) > 50]),
        troubleshooting=_unique([
            _section_after(h) for h in headings
            if any(k in h.get_text().lower() for k in TROUBLE_HEADINGS)
        ]),
    )
    return title or "Untitled", content, data, {"last_modified": _last_modified(soup), "language": _language(soup)}
