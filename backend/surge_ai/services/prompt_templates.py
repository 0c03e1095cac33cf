"""
Prompt Template Engine
Versioned SEO prompt templates loaded from YAML, filled by literal
`{{variable}}` substitution.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import yaml

from ..schemas.ai import ChatMessage

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent.parent / "prompts" / "templates"
DEFAULT_VERSION = "v1"


@dataclass(frozen=True)
class PromptTemplate:
    id: str
    name: str
    description: str
    version: str
    category: str
    system_prompt: str
    user_prompt: str
    variables: Tuple[str, ...]

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "category": self.category,
            "variables": list(self.variables),
        }


@lru_cache()
def load_templates(version: str = DEFAULT_VERSION) -> Tuple[PromptTemplate, ...]:
    """Load all templates from the YAML files of one version directory"""
    version_dir = TEMPLATES_DIR / version
    if not version_dir.exists():
        logger.warning(f"No prompt templates found for version {version}")
        return ()

    templates = []
    for yaml_file in sorted(version_dir.glob("*.yaml")):
        with open(yaml_file, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        for item in data.get("templates", []):
            templates.append(
                PromptTemplate(
                    id=item["id"],
                    name=item["name"],
                    description=item.get("description", ""),
                    version=str(data["version"]),
                    category=data["category"],
                    system_prompt=item["system_prompt"],
                    user_prompt=item["user_prompt"],
                    variables=tuple(item.get("variables", [])),
                )
            )

    logger.debug(f"Loaded {len(templates)} prompt templates ({version})")
    return tuple(templates)


def list_prompt_templates(category: Optional[str] = None) -> List[PromptTemplate]:
    templates = load_templates()
    if category:
        return [t for t in templates if t.category == category]
    return list(templates)


def get_prompt_template(template_id: str) -> Optional[PromptTemplate]:
    for template in load_templates():
        if template.id == template_id:
            return template
    return None


def fill_prompt_template(
    template_id: str,
    variables: Dict[str, str],
) -> Optional[List[ChatMessage]]:
    """
    Build the system + user messages of a template.

    Every `{{key}}` of the supplied variables is replaced literally in both
    prompts. Placeholders without a value are left as they are.

    Returns:
        The two messages, or None for an unknown template id
    """
    template = get_prompt_template(template_id)
    if template is None:
        return None

    system_prompt = template.system_prompt
    user_prompt = template.user_prompt
    for key, value in variables.items():
        placeholder = "{{" + key + "}}"
        system_prompt = system_prompt.replace(placeholder, value)
        user_prompt = user_prompt.replace(placeholder, value)

    return [
        ChatMessage(role="system", content=system_prompt),
        ChatMessage(role="user", content=user_prompt),
    ]
