"""Interactive prompt utilities and the operator decision port"""

from .logging import log_prompt, log_error, log_info, log_warn


def prompt_yes_no(prompt, default=True):
    """
    Interactive yes/no prompt

    Args:
        prompt: Question to ask
        default: Answer used when the operator just presses Enter

    Returns:
        bool: True for yes, False for no
    """
    hint = "[Y/n]" if default else "[y/N]"
    while True:
        log_prompt(f"{prompt} {hint}: ")
        response = input().strip().lower()

        if not response:
            return default
        if response in ['y', 'yes']:
            return True
        elif response in ['n', 'no']:
            return False
        else:
            log_error("Please answer yes or no.")


def prompt_choice(prompt, choices, default=None):
    """
    Interactive multiple choice prompt

    Args:
        prompt: Question to ask
        choices: List of choices
        default: Default choice index (0-based)

    Returns:
        int: Index of selected choice
    """
    while True:
        if default is not None:
            log_prompt(f"{prompt} [1-{len(choices)}, default: {default + 1}]: ")
        else:
            log_prompt(f"{prompt} [1-{len(choices)}]: ")

        response = input().strip()

        if not response and default is not None:
            return default

        try:
            choice_num = int(response)
            if 1 <= choice_num <= len(choices):
                return choice_num - 1
            else:
                log_error(f"Please enter a number between 1 and {len(choices)}")
        except ValueError:
            log_error("Please enter a valid number")


def prompt_input(prompt, default=None, required=True):
    """
    Interactive input prompt

    Args:
        prompt: Question to ask
        default: Default value
        required: Whether input is required

    Returns:
        str: User input or default
    """
    while True:
        default_text = f" (default: {default})" if default else ""
        log_prompt(f"{prompt}{default_text}: ")
        response = input().strip()

        if response:
            return response
        elif default is not None:
            return default
        elif not required:
            return ""
        else:
            log_error("This field is required")


def prompt_acknowledge(message, required_response):
    """
    Force user to type specific text to acknowledge

    Args:
        message: Message to display
        required_response: Exact text user must type
    """
    print(f"\n{message}\n")

    while True:
        log_prompt(f"Type '{required_response}' to acknowledge: ")
        response = input().strip()

        if response == required_response:
            break
        else:
            log_warn(f"Please type '{required_response}' to continue")


class OperatorPrompt:
    """Where every operator decision comes from.

    Steps only ever talk to this interface, so the blocking terminal prompts
    can be replaced by canned answers for unattended runs.
    """

    interactive = True

    def confirm(self, prompt: str, default: bool = True) -> bool:
        raise NotImplementedError

    def ask(self, prompt: str, default: str | None = None) -> str:
        raise NotImplementedError

    def choose(self, prompt: str, choices: list[str], default: int = 0) -> int:
        raise NotImplementedError

    def acknowledge(self, message: str, phrase: str) -> None:
        raise NotImplementedError


class InteractivePrompt(OperatorPrompt):
    """Blocks on terminal input until the operator answers."""

    def confirm(self, prompt, default=True):
        return prompt_yes_no(prompt, default=default)

    def ask(self, prompt, default=None):
        return prompt_input(prompt, default=default, required=default is None)

    def choose(self, prompt, choices, default=0):
        for i, choice in enumerate(choices, 1):
            print(f"  {i}. {choice}")
        return prompt_choice(prompt, choices, default=default)

    def acknowledge(self, message, phrase):
        prompt_acknowledge(message, phrase)


class AutoAcceptPrompt(OperatorPrompt):
    """Answers every question with its default, for unattended runs."""

    interactive = False

    def confirm(self, prompt, default=True):
        log_info(f"[auto] {prompt} -> {'yes' if default else 'no'}")
        return default

    def ask(self, prompt, default=None):
        answer = default or ""
        log_info(f"[auto] {prompt} -> {answer or '(empty)'}")
        return answer

    def choose(self, prompt, choices, default=0):
        log_info(f"[auto] {prompt} -> {choices[default]}")
        return default

    def acknowledge(self, message, phrase):
        log_info("[auto] Recommendations acknowledged")


def make_prompt(non_interactive: bool) -> OperatorPrompt:
    """Pick the operator port for this run."""
    return AutoAcceptPrompt() if non_interactive else InteractivePrompt()
