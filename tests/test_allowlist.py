from assignment_bot.allowlist import Allowlist


def test_commands_always_processed():
    allow = Allowlist([])
    assert allow.should_process("anyone@c.us", is_command=True) == (True, "command")


def test_text_only_from_academic_channels():
    allow = Allowlist(["class@g.us", "  "])
    assert allow.should_process("class@g.us", is_command=False) == (True, "academic_channel")
    assert allow.should_process("family@g.us", is_command=False) == (False, "not_allowlisted")
    assert allow.channels == frozenset({"class@g.us"})
