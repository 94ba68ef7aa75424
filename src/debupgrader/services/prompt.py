"""Operator confirmation prompts for debupgrader."""

from typing import Optional, TextIO

from rich.prompt import Confirm, Prompt
from rich.table import Table

from debupgrader.models import UpgradeMode


class PromptService:
    """Asks y/N questions and the mode menu, or answers them from configuration."""

    def __init__(self, console, logger, auto_confirm: bool = False, stream: Optional[TextIO] = None):
        self.console = console
        self.logger = logger
        self.auto_confirm = auto_confirm
        self.stream = stream

    def confirm(self, question: str, default: bool = False) -> bool:
        if self.auto_confirm:
            self.logger.info("%s -> yes (auto-confirm)", question)
            return True

        answer = Confirm.ask(question, console=self.console, default=default, stream=self.stream)
        self.logger.info("%s -> %s", question, "yes" if answer else "no")
        return answer

    def ask_mode(self) -> str:
        table = Table(title="Upgrade modes", show_header=True, header_style="bold")
        table.add_column("#", justify="right")
        table.add_column("Mode")
        for mode in UpgradeMode:
            table.add_row(str(mode.value), mode.label)
        self.console.print(table)

        answer = Prompt.ask("Select upgrade mode [0-5]", console=self.console, stream=self.stream)
        self.logger.info("Upgrade mode selection: %s", answer)
        return answer
