import pytest

from audio import (
    AudioBlob,
    AudioCapture,
    MicrophonePermissionError,
    RecordingInProgressError,
)
from conftest import FakeStreamFactory, StuckStream, sine_wave
from input_controller import InputController, InputMode, Submission


def make_controller(factory=None, busy=False):
    factory = factory or FakeStreamFactory()
    capture = AudioCapture(stream_factory=factory)
    state = {"busy": busy}
    controller = InputController(capture, is_busy=lambda: state["busy"])
    return controller, factory, state


def upload():
    return AudioBlob(name="question.mp3", content_type="audio/mpeg", data=b"ID3")


def test_text_submission_resets_input():
    controller, _, _ = make_controller()
    controller.set_text("hello")
    assert controller.can_submit

    assert controller.submit() == Submission("hello")
    assert controller.mode is InputMode.TEXT
    assert controller.text == ""
    assert controller.submit() is None


def test_empty_input_is_not_submitted():
    controller, _, _ = make_controller()
    assert not controller.can_submit
    assert controller.submit() is None


def test_record_stop_holds_recording_for_upload():
    controller, factory, _ = make_controller()
    controller.record()
    assert controller.mode is InputMode.RECORDING
    assert controller.analyser is not None
    assert not controller.can_submit

    factory.last.feed(sine_wave())
    blob = controller.stop()

    assert controller.mode is InputMode.UPLOADING
    assert controller.held_file is blob
    assert controller.text == "recording.wav"
    assert controller.analyser is None
    assert factory.last.closed

    submission = controller.submit()
    assert submission.file is blob
    assert controller.mode is InputMode.TEXT
    assert controller.held_file is None


def test_record_twice_is_rejected():
    controller, factory, _ = make_controller()
    controller.record()
    with pytest.raises(RecordingInProgressError):
        controller.record()
    assert len(factory.streams) == 1


def test_capture_failure_leaves_text_mode():
    controller, _, _ = make_controller(FakeStreamFactory(error=PermissionError("denied")))
    with pytest.raises(MicrophonePermissionError):
        controller.record()
    assert controller.mode is InputMode.TEXT


def test_file_choice_rejected_while_recording():
    controller, _, _ = make_controller()
    controller.record()
    with pytest.raises(RecordingInProgressError):
        controller.choose_file(upload())
    assert controller.mode is InputMode.RECORDING


def test_chosen_file_is_submitted_with_its_name():
    controller, _, _ = make_controller()
    controller.choose_file(upload())
    assert controller.mode is InputMode.UPLOADING
    assert controller.text == "question.mp3"

    with pytest.raises(RuntimeError):
        controller.set_text("edited")

    submission = controller.submit()
    assert submission.text == "question.mp3"
    assert submission.file.name == "question.mp3"


def test_busy_blocks_submit_record_and_file():
    controller, factory, state = make_controller()
    controller.set_text("hello")
    state["busy"] = True

    assert controller.submit() is None
    assert controller.text == "hello"
    with pytest.raises(RuntimeError):
        controller.record()
    with pytest.raises(RuntimeError):
        controller.choose_file(upload())
    assert factory.streams == []

    state["busy"] = False
    assert controller.submit() == Submission("hello")


def test_stop_outside_recording_is_noop():
    controller, _, _ = make_controller()
    assert controller.stop() is None
    assert controller.mode is InputMode.TEXT


def test_close_releases_microphone():
    controller, factory, _ = make_controller()
    controller.record()
    controller.close()

    assert factory.last.closed
    assert controller.mode is InputMode.TEXT
    assert controller.held_file is None
    assert not controller.capture.is_recording


def test_failing_stream_stop_does_not_strand_recording_mode():
    controller, factory, _ = make_controller(FakeStreamFactory(stream_class=StuckStream))
    controller.record()
    factory.last.feed(sine_wave())
    blob = controller.stop()

    assert controller.mode is InputMode.UPLOADING
    assert controller.held_file is blob
    assert factory.last.closed
    assert controller.submit().file is blob

    controller.record()
    assert controller.mode is InputMode.RECORDING


def test_stop_error_after_session_ends_returns_to_text():
    controller, factory, _ = make_controller()

    def broken_listener(blob):
        raise RuntimeError("listener failed")

    controller.capture.on_complete(broken_listener)
    controller.record()
    with pytest.raises(RuntimeError):
        controller.stop()

    assert controller.mode is InputMode.TEXT
    assert not controller.capture.is_recording
    controller.record()
    assert len(factory.streams) == 2
