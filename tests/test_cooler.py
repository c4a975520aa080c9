import pytest

from qhyccd.cameras.qhy.errors import SetParameterError
from qhyccd.cameras.qhy.simulation.state import CoolerMode
from qhyccd.cooling.cooler import Cooler, CoolerActivities


@pytest.fixture
def cooler(sdk, camera):
    cooler = sdk.coolers[0]
    camera.open()
    yield cooler
    cooler.shutdown()


class TestCooler:

    def test_found_by_the_sdk(self, sdk, camera):
        assert len(sdk.coolers) == 1
        assert sdk.coolers[0].camera is camera

    def test_reads_the_sensor(self, cooler):
        assert cooler.temperature == pytest.approx(20.0)
        assert cooler.pwm == 0

    def test_set_target(self, cooler, state):
        cooler.set_target(-5)
        assert cooler.get_target() == -5
        assert state.cooler_mode == CoolerMode.Auto

    def test_manual_pwm(self, cooler, state):
        cooler.set_manual_pwm(100)
        assert state.cooler_mode == CoolerMode.Manual
        assert cooler.target is None
        with pytest.raises(ValueError):
            cooler.set_manual_pwm(300)

    def test_cool_down(self, cooler, state):
        cooler.cool_down()
        assert cooler.is_active(CoolerActivities.CoolingDown)
        assert cooler.get_target() == -10
        assert cooler.timer is not None

        state.update_temperature(dt=1000)
        cooler.on_timer()
        assert cooler.is_idle()
        assert cooler.timer is None

    def test_warm_up_after_cool_down(self, cooler, state):
        cooler.cool_down()
        state.update_temperature(dt=1000)
        cooler.warm_up()
        assert cooler.is_active(CoolerActivities.WarmingUp)
        assert not cooler.is_active(CoolerActivities.CoolingDown)

        cooler.on_timer()
        assert cooler.is_active(CoolerActivities.WarmingUp)
        state.update_temperature(dt=1000)
        cooler.on_timer()
        assert cooler.is_idle()

    def test_abort(self, cooler):
        cooler.cool_down()
        cooler.abort()
        assert cooler.is_idle()
        assert cooler.timer is None

    def test_status(self, cooler):
        status = cooler.status()
        assert status['operational'] is True
        assert status['temperature'] == pytest.approx(20.0)


class TestWithoutCooler:

    @pytest.fixture
    def sim_config(self):
        from conftest import small_camera_config
        return small_camera_config(cooler=False)

    def test_no_cooler_found(self, sdk):
        assert sdk.coolers == []

    def test_set_target_fails(self, camera):
        camera.open()
        with pytest.raises(SetParameterError):
            Cooler(camera).set_target(-10)
