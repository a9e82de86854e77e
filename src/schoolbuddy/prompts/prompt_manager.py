import inspect
import logging
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

from src.schoolbuddy.prompts import school_facts

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"
SYSTEM_INSTRUCTION_TEMPLATE = "system_instruction.jinja2"
DEFAULT_ASSISTANT_NAME = "SchoolBuddy"


class PromptManager:
    """
    Manages loading and rendering of Jinja2 prompt templates.
    """
    def __init__(self, template_dir: Path = TEMPLATE_DIR):
        """Initializes the PromptManager."""
        if not template_dir.exists():
            logger.error("Prompt template directory not found at: %s", template_dir)
            raise FileNotFoundError(f"Prompt template directory not found: {template_dir}")

        self.env = Environment(
            loader=FileSystemLoader(template_dir),
            autoescape=select_autoescape(),
            undefined=StrictUndefined,
            keep_trailing_newline=False,
        )
        self._load_school_facts_as_globals()
        logger.debug("PromptManager initialized with templates from %s", template_dir)

    def _load_school_facts_as_globals(self):
        """
        Loads all uppercase string constants of school_facts as Jinja2 globals.
        """
        for name, value in inspect.getmembers(school_facts):
            if name.isupper() and isinstance(value, str):
                self.env.globals[name] = value

    def render(self, template_name: str, **kwargs) -> str:
        """
        Renders a prompt template with the given context.

        Args:
            template_name: The name of the template file.
            **kwargs: The context variables to pass to the template.

        Returns:
            The rendered prompt string.
        """
        template = self.env.get_template(template_name)
        return template.render(**kwargs).strip()

    def system_instruction(self, assistant_name: str = DEFAULT_ASSISTANT_NAME) -> str:
        """Renders the persona + school knowledge sent when a chat session is created."""
        return self.render(SYSTEM_INSTRUCTION_TEMPLATE, assistant_name=assistant_name)
