import pytest

from qlinstall.errors import PromptAbandoned, UserAborted
from qlinstall.prompt import Credentials, PromptGateway, PromptKind


class Terminal:
    """Scripted keyboard plus a capture of everything written to the display."""
    def __init__(self, keys=(), lines=()):
        self.keys = list(keys)
        self.lines = list(lines)
        self.out = []

    def read_char(self):
        if not self.keys:
            # what click.getchar does on Ctrl-D
            raise EOFError
        return self.keys.pop(0)

    def read_line(self, prompt):
        self.out.append(prompt)
        return self.lines.pop(0)

    def write(self, text):
        self.out.append(text)

    @property
    def display(self):
        return "".join(self.out)


def _gateway(term, **kw):
    return PromptGateway(read_line=term.read_line, read_char=term.read_char, write=term.write, **kw)


def test_masked_input_with_backspace():
    term = Terminal(keys=["p", "a", "s", "\x7f", "s", "s", "\r"])
    value = _gateway(term).ask("Enter your Steam password:", PromptKind.SECRET)

    assert value == "pss"
    assert term.display == "Enter your Steam password: ***\b \b**\n"
    for ch in "pas":
        assert ch not in term.display.replace("Enter your Steam password:", "")


def test_masked_input_without_mask_writes_nothing_typed():
    term = Terminal(keys=list("hunter2") + ["\n"])
    assert _gateway(term, mask="").read_secret("pw:") == "hunter2"
    assert term.display == "pw: \n"


def test_backspace_on_empty_input_is_ignored():
    term = Terminal(keys=["\b", "\b", "x", "\r"])
    assert _gateway(term).read_secret("pw:") == "x"
    assert "\b \b" not in term.display


def test_ctrl_d_ends_secret_input():
    term = Terminal(keys=["a", "b"])
    assert _gateway(term).read_secret("pw:") == "ab"
    assert term.display == "pw: **\n"


def test_ctrl_c_during_secret_raises_user_aborted():
    term = Terminal(keys=["a", "\x03"])
    with pytest.raises(UserAborted):
        _gateway(term).read_secret("pw:")


def test_required_field_reprompts_then_abandons():
    term = Terminal(lines=["", "  ", ""])
    with pytest.raises(PromptAbandoned) as exc:
        _gateway(term, max_attempts=3).ask("Enter your Steam username:")
    assert exc.value.attempts == 3
    assert term.display.count("Value cannot be empty") == 3


def test_required_field_accepts_after_retry():
    term = Terminal(lines=["", "player"])
    assert _gateway(term).ask("Enter your Steam username:") == "player"


@pytest.mark.parametrize("answer, expected", [
    ("yes", True),
    ("y", False),
    ("Yes", False),
    ("YES", False),
    ("", False),
    ("no", False),
])
def test_destructive_confirmation_requires_exact_yes(answer, expected):
    term = Terminal(lines=[answer])
    assert _gateway(term).confirm_destructive("Remove everything?") is expected
    assert "Type 'yes' to confirm:" in term.display


def test_confirm_accepts_y_and_n():
    term = Terminal(lines=["Y", "n"])
    gw = _gateway(term)
    assert gw.confirm("Change timezone?") is True
    assert gw.confirm("Change timezone?") is False


def test_confirm_reprompts_on_garbage():
    term = Terminal(lines=["maybe", "y"])
    assert _gateway(term).confirm("Continue?") is True
    assert "Please answer 'y' or 'n'." in term.display


def test_choose_returns_option_key():
    term = Terminal(lines=["4", "2"])
    options = {"1": "visible", "2": "hidden", "3": "cancel"}
    assert _gateway(term).choose("Choose option", options) == "2"
    assert "Invalid option" in term.display


def test_scripted_answers_are_consumed_in_order_and_skip_terminal():
    term = Terminal()
    gw = _gateway(term, answers={"steam_auth_option": ["1", "3"], "steam_password": "pw"}, interactive=False)
    assert gw.choose("Choose option", {"1": "a", "2": "b", "3": "c"}, key="steam_auth_option") == "1"
    assert gw.ask("pw", PromptKind.SECRET, key="steam_password") == "pw"
    assert gw.choose("Choose option", {"1": "a", "2": "b", "3": "c"}, key="steam_auth_option") == "3"


def test_non_interactive_without_answer_abandons():
    gw = _gateway(Terminal(), interactive=False)
    with pytest.raises(PromptAbandoned):
        gw.ask("Enter your Steam username:", key="steam_username")
    # destructive gates decline instead of raising
    assert gw.confirm_destructive("Remove?", key="confirm_abort") is False


def test_credentials_repr_hides_secrets():
    creds = Credentials(service_password="pw1", steam_username="player", steam_password="pw2")
    text = repr(creds)
    assert "pw1" not in text and "pw2" not in text
    assert "player" in text
    creds.wipe()
    assert creds.service_password is None and creds.steam_password is None
