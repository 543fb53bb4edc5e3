"""
Setup Instruction Parser - Estrutura o conteúdo raspado.

Recebe um ScrapedContent e produz ParsedSetupInstructions com instalação,
configuração, credenciais, exemplos, verificação e troubleshooting.

Confiança = 30% instalação + 25% configuração + 20% credenciais
          + 15% exemplos + 10% verificação
"""

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import json_repair

from .models import ParsedSetupInstructions, ScrapedContent

logger = logging.getLogger(__name__)

CONFIDENCE_WEIGHTS = {
    "installation": 0.30,
    "configuration": 0.25,
    "credentials": 0.20,
    "examples": 0.15,
    "verification": 0.10,
}

INSTALL_PATTERNS = [
    re.compile(p, re.IGNORECASE) for p in (
        r"npm\s+install[^\n]*", r"pip\s+install[^\n]*", r"yarn\s+add[^\n]*", r"pnpm\s+add[^\n]*",
        r"go\s+get[^\n]*", r"docker\s+pull[^\n]*", r"cargo\s+add[^\n]*", r"gem\s+install[^\n]*",
    )
]
# Gerenciador = primeiro desta lista que inicia algum comando
PACKAGE_MANAGERS = ["pnpm", "yarn", "npm", "pip", "docker", "go", "cargo", "gem"]

REQUIREMENT_PATTERN = re.compile(
    r"\b(?:requires?|prerequisites?|node(?:\.js)?\s+version|python\s+version)\b[:\s]+([^\n]+)", re.IGNORECASE
)
VERSION_PATTERN = re.compile(r"\bversion\s+v?(\d+\.\d+(?:\.\d+)?)", re.IGNORECASE)
FIELD_PATTERNS = {
    "required": re.compile(r"required[_\s]?fields?[:\s]+([^\n]+)", re.IGNORECASE),
    "optional": re.compile(r"optional[_\s]?fields?[:\s]+([^\n]+)", re.IGNORECASE),
}
CONFIG_FENCE = re.compile(r"```(?:json|ya?ml|toml|ini)\s*\n(.*?)```", re.IGNORECASE | re.DOTALL)
CODE_FENCE = re.compile(r"```([\w+-]*)\s*\n(.*?)```", re.DOTALL)

CREDENTIAL_LABEL = re.compile(
    r"\b(api[_\s]?key|token|secret|password|username)\b\s*:\s*([^\n]+)", re.IGNORECASE
)
ENV_VAR = re.compile(r"\b[A-Z][A-Z0-9]*(?:_[A-Z0-9]+)+\b")
ENV_MARKERS = ("API", "KEY", "TOKEN", "SECRET", "PASSWORD")
OPTIONAL_HINT = re.compile(r"\boptional\b", re.IGNORECASE)

NUMBERED_STEP = re.compile(r"^\s*\d+\.\s+([^\n]+)", re.MULTILINE)
TEST_COMMAND_PATTERNS = [
    re.compile(r"(?:test|verify|check)[_\s]?command[:\s]+`?([^`\n]+)`?", re.IGNORECASE),
    re.compile(r"Run(?: the test command)?:\s*`([^`]+)`", re.IGNORECASE),
]
EXPECTED_OUTPUT = re.compile(r"(?:expected[_\s]?output|should[_\s]?show)[:\s]+([^\n]+)", re.IGNORECASE)

ISSUE_PATTERNS = [
    re.compile(r"\*\*Issue\*\*:\s*([^\n]+)\s*\*\*Solution\*\*:\s*([^\n]+)", re.IGNORECASE),
    re.compile(r"\bIssue:\s*([^\n]+)\s*Solution:\s*([^\n]+)", re.IGNORECASE),
    re.compile(r"\bProblem:\s*([^\n]+)\s*Fix:\s*([^\n]+)", re.IGNORECASE),
]
FAQ_PATTERNS = [
    re.compile(r"\bQ:\s*([^\n]+)\s*A:\s*([^\n]+)"),
    re.compile(r"\bQuestion:\s*([^\n]+)\s*Answer:\s*([^\n]+)", re.IGNORECASE),
]

LANGUAGE_PATTERNS = [
    (re.compile(r"^\s*[{\[]"), "json"),
    (re.compile(r"^\s*(?:npm|npx|pip|yarn|pnpm|docker|go|export)\s", re.MULTILINE), "bash"),
    (re.compile(r"import\s+.*from\s+['\"]"), "javascript"),
    (re.compile(r"\bconst\s+\w+\s*="), "javascript"),
    (re.compile(r"\bdef\s+\w+\("), "python"),
    (re.compile(r"^\s*import\s+\w+", re.MULTILINE), "python"),
    (re.compile(r"\bpackage\s+\w+"), "go"),
    (re.compile(r"\bfunc\s+\w+\("), "go"),
    (re.compile(r"\bfn\s+\w+\("), "rust"),
]


def _unique(values: List[Any]) -> List[Any]:
    seen, result = set(), []
    for value in values:
        marker = json.dumps(value, sort_keys=True) if isinstance(value, (dict, list)) else value
        if value and marker not in seen:
            seen.add(marker)
            result.append(value)
    return result


def parse_json_config(text: str) -> Optional[Any]:
    """JSON estrito; se falhar, tenta json_repair. None se não for objeto/lista."""
    text = text.strip()
    if not text:
        return None
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        try:
            data = json_repair.loads(text)
        except (ValueError, TypeError) as e:
            logger.debug(f"[SetupParser] json_repair falhou: {e}")
            return None
    if isinstance(data, (dict, list)) and data:
        return data
    return None


def detect_language(code: str) -> str:
    for pattern, language in LANGUAGE_PATTERNS:
        if pattern.search(code):
            return language
    return "text"


class SetupInstructionParser:
    """
    Parser de instruções de setup.

    Args:
        enable_code_extraction: Extrair exemplos de código
        enable_credential_detection: Extrair credenciais
    """

    def __init__(
        self,
        enable_code_extraction: bool = True,
        enable_credential_detection: bool = True
    ):
        self.enable_code_extraction = enable_code_extraction
        self.enable_credential_detection = enable_credential_detection

    def parse(self, scraped: ScrapedContent) -> ParsedSetupInstructions:
        result = ParsedSetupInstructions()
        content = scraped.content or ""

        result.installation = self._parse_installation(scraped, content)
        result.configuration = self._parse_configuration(scraped, content)
        if self.enable_credential_detection:
            result.credentials = self._parse_credentials(scraped, content)
        if self.enable_code_extraction:
            result.examples = self._parse_examples(scraped, content)
        result.verification = self._parse_verification(scraped, content)
        result.troubleshooting = self._parse_troubleshooting(scraped, content)

        result.metadata = {
            "source": scraped.url,
            "parsed_at": datetime.now(timezone.utc).isoformat(),
            "confidence": self.calculate_confidence(result),
            "content_types": [scraped.content_type],
        }

        logger.info(
            f"🧩 Setup parseado: {scraped.url} (confiança={result.metadata['confidence']:.2f}, "
            f"{len(result.installation['commands'])} comandos, {len(result.credentials)} credenciais)"
        )
        return result

    def _parse_installation(self, scraped: ScrapedContent, content: str) -> Dict[str, Any]:
        commands = list(scraped.extracted.installation_commands)
        commands += [m.group(0).strip() for p in INSTALL_PATTERNS for m in p.finditer(content)]
        commands = _unique(commands)

        package_manager = None
        for manager in PACKAGE_MANAGERS:
            if any(re.match(rf"\s*{manager}\b", cmd, re.IGNORECASE) for cmd in commands):
                package_manager = manager
                break

        version_match = VERSION_PATTERN.search(content)
        return {
            "commands": commands,
            "requirements": _unique([m.group(1).strip() for m in REQUIREMENT_PATTERN.finditer(content)]),
            "package_manager": package_manager,
            "version": version_match.group(1) if version_match else None,
        }

    def _parse_configuration(self, scraped: ScrapedContent, content: str) -> Dict[str, Any]:
        examples = list(scraped.extracted.configuration_examples)
        examples += [m.group(1).strip() for m in CONFIG_FENCE.finditer(content)]
        examples = _unique(examples)

        fields: Dict[str, List[str]] = {"required": [], "optional": []}
        for kind, pattern in FIELD_PATTERNS.items():
            for match in pattern.finditer(content):
                fields[kind].extend(f.strip() for f in re.split(r"[,;]", match.group(1)) if f.strip())

        schema = None
        template = None
        for example in examples:
            schema = parse_json_config(example)
            if schema is not None:
                template = json.dumps(schema, indent=2)
                break

        return {
            "template": template,
            "required_fields": _unique(fields["required"]),
            "optional_fields": _unique(fields["optional"]),
            "examples": examples,
            "schema": schema,
        }

    def _parse_credentials(self, scraped: ScrapedContent, content: str) -> List[Dict[str, Any]]:
        credentials: Dict[str, Dict[str, Any]] = {}

        def add(key: str, description: str, env_var: Optional[str] = None, context: str = "") -> None:
            if key in credentials:
                return
            credentials[key] = {
                "key": key,
                "description": description,
                "optional": bool(OPTIONAL_HINT.search(context)),
                "env_var": env_var,
            }

        lines = content.splitlines()

        def line_of(token: str) -> str:
            return next((line for line in lines if token in line), "")

        for match in ENV_VAR.finditer(content):
            name = match.group(0)
            if len(name) > 3 and any(m in name for m in ENV_MARKERS):
                add(name, f"Variável de ambiente {name}", env_var=name, context=line_of(name))

        for match in CREDENTIAL_LABEL.finditer(content):
            key = re.sub(r"\s+", "_", match.group(1).lower())
            add(key, match.group(2).strip(), context=match.group(0))

        for cred in scraped.extracted.required_credentials:
            env_var = cred if ENV_VAR.fullmatch(cred) else None
            add(cred, f"Credencial exigida: {cred}", env_var=env_var, context=line_of(cred))

        return list(credentials.values())

    def _parse_examples(self, scraped: ScrapedContent, content: str) -> List[Dict[str, str]]:
        examples: List[Dict[str, str]] = []
        seen = set()

        for lang, code in CODE_FENCE.findall(content):
            code = code.strip()
            if len(code) > 20 and code not in seen:
                seen.add(code)
                language = lang.lower() or detect_language(code)
                examples.append({"language": language, "code": code, "description": f"Exemplo em {language}"})

        for code in scraped.extracted.code_examples:
            if code not in seen:
                seen.add(code)
                language = detect_language(code)
                examples.append({"language": language, "code": code, "description": f"Exemplo em {language}"})

        return examples

    def _parse_verification(self, scraped: ScrapedContent, content: str) -> Dict[str, List[str]]:
        steps = list(scraped.extracted.setup_instructions)
        steps += [m.group(1).strip() for m in NUMBERED_STEP.finditer(content)]

        commands = [m.group(1).strip() for p in TEST_COMMAND_PATTERNS for m in p.finditer(content)]
        outputs = [m.group(1).strip() for m in EXPECTED_OUTPUT.finditer(content)]

        return {
            "steps": _unique(steps),
            "test_commands": _unique(commands),
            "expected_outputs": _unique(outputs),
        }

    def _parse_troubleshooting(self, scraped: ScrapedContent, content: str) -> Dict[str, List[Any]]:
        issues = [
            {"issue": item, "solution": "Ver documentação"} for item in scraped.extracted.troubleshooting
        ]
        for pattern in ISSUE_PATTERNS:
            for match in pattern.finditer(content):
                issues.append({"issue": match.group(1).strip(), "solution": match.group(2).strip()})

        faq = []
        for pattern in FAQ_PATTERNS:
            for match in pattern.finditer(content):
                faq.append({"question": match.group(1).strip(), "answer": match.group(2).strip()})

        return {"common_issues": _unique(issues), "faq": _unique(faq)}

    @staticmethod
    def calculate_confidence(result: ParsedSetupInstructions) -> float:
        present = {
            "installation": bool(result.installation["commands"]),
            "configuration": bool(result.configuration["examples"]),
            "credentials": bool(result.credentials),
            "examples": bool(result.examples),
            "verification": bool(result.verification["steps"]),
        }
        score = sum(CONFIDENCE_WEIGHTS[k] for k, ok in present.items() if ok)
        return round(score / sum(CONFIDENCE_WEIGHTS.values()), 6)
