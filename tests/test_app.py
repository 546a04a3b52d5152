from packplant.app import build_arg_parser
from packplant.core.models import EditState
from packplant.ui.widgets import edit_state_badge, fmt_kg


def test_cli_defaults():
    args = build_arg_parser().parse_args([])
    assert (args.host, args.port, args.log_level) == ("0.0.0.0", 8080, "INFO")


def test_cli_overrides():
    args = build_arg_parser().parse_args(["--port", "9001", "--log-level", "DEBUG"])
    assert args.port == 9001
    assert args.log_level == "DEBUG"


def test_row_status_badges():
    assert edit_state_badge(EditState.IDLE)[0] == ""
    assert edit_state_badge(EditState.SAVING)[1] == "warning"
    assert edit_state_badge(EditState.ERROR) == ("Error", "negative")
    assert fmt_kg(1234.56) == "1,234.6 kg"
    assert fmt_kg(None) == "0.0 kg"
