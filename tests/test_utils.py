import logging
import os
from enum import IntFlag, auto

import pytest

from qhyccd.utils import Activities, DailyFileHandler, PathMaker


class Dance(IntFlag):
    Waltz = auto()
    Tango = auto()


class Dancer(Activities):

    def __init__(self):
        Activities.__init__(self)
        self.logger = logging.getLogger('qhyccd.tests')


class TestActivities:

    def test_start_and_end(self):
        dancer = Dancer()
        assert dancer.is_idle()

        dancer.start_activity(Dance.Waltz)
        dancer.start_activity(Dance.Tango)
        assert dancer.is_active(Dance.Waltz)
        assert dancer.is_active(Dance.Tango)

        dancer.end_activity(Dance.Waltz)
        assert not dancer.is_active(Dance.Waltz)
        assert dancer.timings[Dance.Waltz].duration.total_seconds() >= 0

        dancer.end_activity(Dance.Tango)
        assert dancer.is_idle()

    def test_ending_an_inactive_activity_is_harmless(self):
        dancer = Dancer()
        dancer.end_activity(Dance.Waltz)
        assert dancer.is_idle()


class TestPathMaker:

    @pytest.fixture
    def path_maker(self, tmp_path):
        maker = PathMaker()
        maker.top_folder = str(tmp_path)
        return maker

    def test_sequence_increments(self, tmp_path):
        folder = str(tmp_path / 'seq')
        assert PathMaker.make_seq(folder) == '0001'
        assert PathMaker.make_seq(folder) == '0002'

    def test_sequences_are_per_camera(self, tmp_path):
        folder = str(tmp_path)
        assert PathMaker.make_seq(folder, camera='A') == '0001'
        assert PathMaker.make_seq(folder, camera='B') == '0001'
        assert PathMaker.make_seq(folder, camera='A') == '0002'

    def test_exposure_file_name(self, path_maker, tmp_path):
        name = path_maker.make_exposure_file_name('SIM-TEST')
        assert name.startswith(str(tmp_path))
        assert os.path.basename(os.path.dirname(name)) == 'Exposures'
        assert os.path.basename(name) == 'exposure-SIM-TEST-0001'

        live = path_maker.make_exposure_file_name('SIM-TEST', live=True)
        assert os.path.basename(os.path.dirname(live)) == 'Live'

    def test_logs_folder(self, path_maker, tmp_path):
        assert path_maker.make_logs_folder_name() == os.path.join(str(tmp_path), 'logs')


class TestDailyFileHandler:

    def test_file_name(self, tmp_path):
        handler = DailyFileHandler(top=str(tmp_path), path='qhyccd.log')
        name = handler.make_file_name()
        assert name.startswith(str(tmp_path))
        assert name.endswith(os.path.join('', 'qhyccd.log'))
        assert len(os.path.basename(os.path.dirname(name))) == len('2024-01-01')

    def test_emits_into_the_daily_folder(self, tmp_path):
        handler = DailyFileHandler(top=str(tmp_path), path='qhyccd.log')
        logger = logging.getLogger('qhyccd.tests.daily')
        logger.propagate = False
        logger.addHandler(handler)
        try:
            logger.warning('hello')
        finally:
            logger.removeHandler(handler)
            handler.close()
        with open(handler.make_file_name()) as f:
            assert 'hello' in f.read()
