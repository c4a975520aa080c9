from qhyccd.cameras.qhy.controls import QHY600_CONTROL_RANGES, QHYControlId, control_by_id, qhy_controls


class TestControlIds:

    def test_known_values(self):
        assert QHYControlId.CONTROL_GAIN == 6
        assert QHYControlId.CONTROL_CFWPORT == 17
        assert QHYControlId.CONTROL_CFWSLOTSNUM == 44
        assert QHYControlId.CAM_SINGLEFRAMEMODE == 57
        assert QHYControlId.CAM_LIVEVIDEOMODE == 58
        assert QHYControlId.CAM_IS_COLOR == 59
        assert QHYControlId.CAM_HUMIDITY == 62
        assert QHYControlId.CONTROL_AUTOWHITEBALANCE == 1024
        assert QHYControlId.CONTROL_HDR_showKB == 1038

    def test_contiguous_up_to_93(self):
        values = {c.value for c in QHYControlId}
        assert set(range(94)) <= values


class TestControlCatalog:

    def test_every_measured_control_is_listed(self):
        assert len(qhy_controls) == len(QHY600_CONTROL_RANGES)

    def test_control_by_id_with_range(self):
        gain = control_by_id(QHYControlId.CONTROL_GAIN)
        assert gain.name == 'CONTROL_GAIN'
        assert gain.range.min == 0.0
        assert gain.range.max == 200.0
        assert gain.range.step == 1.0

    def test_control_by_id_without_range(self):
        ctrl = control_by_id(QHYControlId.CAM_SINGLEFRAMEMODE)
        assert ctrl is not None
        assert ctrl.range is None

    def test_control_by_id_unknown(self):
        assert control_by_id(QHYControlId.CONTROL_WBR) is None
