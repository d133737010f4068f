from signal import SIGINT, SIGTERM

import pytest

from sentinel_entrypoint.utils.shutdown import NodeShutdown, immediate_exit


class RecordingLoop:
    stopped = False

    def stop(self):
        self.stopped = True


@pytest.mark.parametrize("signal_enum", [SIGINT, SIGTERM])
def test_immediate_exit_stops_loop(signal_enum):
    loop = RecordingLoop()

    with pytest.raises(NodeShutdown) as excinfo:
        immediate_exit(signal_enum, loop)

    assert loop.stopped
    assert excinfo.value.code == signal_enum.value
    assert excinfo.value.signal_enum == signal_enum
