from coach_agent.memory import LongMemory, sanitize


def test_sanitize_bounds_strings_lists_and_depth():
    value = {
        "text": "a" * 2000,
        "items": list(range(50)),
        "deep": {"l1": {"l2": {"l3": {"l4": {"l5": "gone"}}}}},
    }
    clean = sanitize(value)
    assert len(clean["text"]) == 1201 and clean["text"].endswith("…")
    assert len(clean["items"]) == 24
    assert clean["deep"]["l1"]["l2"]["l3"]["l4"] is None


def test_append_and_list_recent(tmp_path):
    memory = LongMemory(tmp_path / "long_memory.jsonl")
    memory.append_interaction("agent.step", input={"goal": "a"}, output={"final": "A"})
    memory.append_interaction("agent.step", input={"goal": "b"}, output={"final": "B"})

    recent = memory.list_recent(limit=5)
    assert [r.input["goal"] for r in recent] == ["a", "b"]


def test_rolling_window_keeps_max_items(tmp_path):
    memory = LongMemory(tmp_path / "long_memory.jsonl")
    for i in range(55):
        memory.append_interaction("agent.step", input={"i": i}, max_items=50)

    lines = memory.path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 50
    assert memory.list_recent(limit=1)[0].input == {"i": 54}


def test_opt_out_and_global_disable(tmp_path):
    memory = LongMemory(tmp_path / "long_memory.jsonl")
    memory.append_interaction("agent.step", input={"x": 1}, preferences={"enableMemory": False})
    assert not memory.path.exists()

    disabled = LongMemory(tmp_path / "other.jsonl", disabled=True)
    disabled.append_interaction("agent.step", input={"x": 1})
    assert not disabled.path.exists()
    assert disabled.build_snippet() == ""


def test_snippet_format_and_budget(tmp_path):
    memory = LongMemory(tmp_path / "long_memory.jsonl")
    assert memory.build_snippet() == ""

    for i in range(40):
        memory.append_interaction("agent.step", input={"goal": "g" * 100}, output={"final": f"f{i}"})

    snippet = memory.build_snippet(max_chars=400)
    assert snippet.startswith("- ")
    assert " agent.step in=" in snippet
    assert len(snippet) == 401 and snippet.endswith("…")


def test_corrupt_lines_are_skipped(tmp_path):
    memory = LongMemory(tmp_path / "long_memory.jsonl")
    memory.append_interaction("agent.step", input={"ok": True})
    with memory.path.open("a", encoding="utf-8") as fh:
        fh.write("not json\n")
    assert len(memory.list_recent()) == 1
