from shortsmith.domain.workspace import Workspace


def test_workspace_paths(tmp_path):
    ws = Workspace.for_job(str(tmp_path / ".shortsmith"), "abc123").create()
    assert ws.root.name == "abc123"
    assert ws.root.parent.name == "jobs"
    assert ws.material(0, ".png").name == "mat_0.png"
    assert ws.segment(2).name == "seg_2.mp4"
    assert ws.tts_clip(1).parent.name == "tts"
    assert ws.subtitle_ass.name == "subtitle.ass"
    assert ws.output_mp4.name == "output.mp4"
