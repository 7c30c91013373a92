import threading
import time

import pytest

from ridesync.services.container import get_container


def test_services_are_built_once(container):
    assert container.get('device_auth_service') is container.get('device_auth_service')
    assert container.get('sync_service').auth_service is container.get('auth_service')


def test_concurrent_first_use_builds_one_instance(container, mocker):
    def build():
        time.sleep(0.05)
        return object()

    builder = mocker.patch.object(container, '_init_slow_service', create=True, side_effect=build)
    barrier = threading.Barrier(6)
    results = []

    def worker():
        barrier.wait()
        results.append(container.get('slow_service'))

    threads = [threading.Thread(target=worker) for _ in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(5)

    assert len(results) == 6
    assert all(result is results[0] for result in results)
    assert builder.call_count == 1


def test_unknown_service(container):
    with pytest.raises(KeyError):
        container.get('nope')


def test_registered_service_wins(app, container):
    replacement = object()
    container.register('cloud_client', replacement)

    assert get_container(app).get('cloud_client') is replacement
