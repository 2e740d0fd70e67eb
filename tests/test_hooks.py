import pytest

from trustboot_installer.lib.hooks import Operation, SigningTrigger, TriggerType, parse_hook, render_hook


def _trigger(**overrides):
    values = dict(
        name="95-trustboot-driver",
        description="Signing driver modules for Secure Boot",
        trigger_type=TriggerType.PACKAGE,
        targets=("nvidia", "nvidia-dkms"),
        action="/usr/local/sbin/trustboot-resign modules",
        depends=("sbctl",),
    )
    values.update(overrides)
    return SigningTrigger(**values)


def test_render_package_hook():
    text = render_hook(_trigger())

    assert text.splitlines() == [
        "[Trigger]",
        "Operation = Install",
        "Operation = Upgrade",
        "Type = Package",
        "Target = nvidia",
        "Target = nvidia-dkms",
        "",
        "[Action]",
        "Description = Signing driver modules for Secure Boot",
        "When = PostTransaction",
        "Depends = sbctl",
        "Exec = /usr/local/sbin/trustboot-resign modules",
    ]


def test_rendered_hook_parses_back():
    trigger = _trigger(trigger_type=TriggerType.PATH, targets=("usr/lib/modules/*/vmlinuz",))
    parsed = parse_hook(render_hook(trigger))

    assert parsed["Trigger"]["Type"] == ["Path"]
    assert parsed["Trigger"]["Operation"] == ["Install", "Upgrade"]
    assert parsed["Trigger"]["Target"] == ["usr/lib/modules/*/vmlinuz"]
    assert parsed["Action"]["Exec"] == ["/usr/local/sbin/trustboot-resign modules"]
    assert parsed["Action"]["Depends"] == ["sbctl"]


def test_parse_handles_comments_and_flags():
    parsed = parse_hook("# managed\n[Trigger]\nType = Path\nTarget = boot/*\n\n[Action]\nExec = /bin/true\nNeedsTargets\n")
    assert parsed["Action"]["NeedsTargets"] == [""]


def test_parse_rejects_key_outside_section():
    with pytest.raises(ValueError):
        parse_hook("Exec = /bin/true\n")


@pytest.mark.parametrize("field", ["targets", "operations"])
def test_render_rejects_empty_trigger(field):
    with pytest.raises(ValueError):
        render_hook(_trigger(**{field: ()}))


def test_filename_and_remove_operation():
    t = _trigger(operations=(Operation.REMOVE,))
    assert t.filename == "95-trustboot-driver.hook"
    assert "Operation = Remove" in render_hook(t)
