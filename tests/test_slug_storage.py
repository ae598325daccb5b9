import json

import pytest

from shoutstream.core.errors import SlugGenerationError
from shoutstream.core.models import PlayerConfig, ServerDialect
from shoutstream.storage.slug_storage import SLUG_ALPHABET, SLUG_LENGTH, SlugStorage, generate_slug


@pytest.fixture
def storage(tmp_path):
    return SlugStorage(str(tmp_path / 'data' / 'slugs.json'))


def test_generate_slug_shape():
    for _ in range(50):
        slug = generate_slug()
        assert len(slug) == SLUG_LENGTH
        assert set(slug) <= set(SLUG_ALPHABET)


def test_create_persists_config(storage):
    config = PlayerConfig('http://radio.example.com:8000/', 'http://img/logo.png', ServerDialect.ICECAST)
    slug = storage.create(config)

    with open(storage.file_path) as f:
        stored = json.load(f)
    assert stored[slug]['streamUrl'] == 'http://radio.example.com:8000/'
    assert stored[slug]['logoUrl'] == 'http://img/logo.png'
    assert stored[slug]['serverDialect'] == 'icecast'
    assert stored[slug]['accessCount'] == 0
    assert stored[slug]['createdAt'].endswith('Z')


def test_reload_from_disk(storage):
    slug = storage.create(PlayerConfig('http://a/'))
    reopened = SlugStorage(storage.file_path)
    assert reopened.get(slug).stream_url == 'http://a/'
    assert reopened.exists(slug)
    assert not reopened.exists('missing')


def test_increment_access_count(storage):
    slug = storage.create(PlayerConfig('http://a/'))
    assert storage.increment_access_count(slug).access_count == 1
    assert storage.increment_access_count(slug).access_count == 2
    assert SlugStorage(storage.file_path).get(slug).access_count == 2


def test_increment_unknown_slug(storage):
    assert storage.increment_access_count('nope') is None


def test_create_skips_taken_slugs(storage):
    storage.set('aaaaaaa', PlayerConfig('http://taken/'))
    candidates = iter(['aaaaaaa', 'bbbbbbb'])
    slug = storage.create(PlayerConfig('http://new/'), slug_factory=lambda: next(candidates))
    assert slug == 'bbbbbbb'
    assert storage.get('aaaaaaa').stream_url == 'http://taken/'


def test_create_gives_up_after_collisions(storage):
    storage.set('aaaaaaa', PlayerConfig('http://taken/'))
    with pytest.raises(SlugGenerationError):
        storage.create(PlayerConfig('http://new/'), slug_factory=lambda: 'aaaaaaa')


def test_missing_or_corrupt_file_reads_empty(tmp_path):
    assert SlugStorage(str(tmp_path / 'none.json')).read_json() == {}
    broken = tmp_path / 'broken.json'
    broken.write_text('{not json')
    assert SlugStorage(str(broken)).read_json() == {}
    listed = tmp_path / 'list.json'
    listed.write_text('[1, 2]')
    assert SlugStorage(str(listed)).read_json() == {}


def test_malformed_entries_are_skipped(tmp_path):
    path = tmp_path / 'slugs.json'
    path.write_text(json.dumps({
        'good123': {'streamUrl': 'http://a/', 'serverDialect': 'bogus'},
        'bad4567': {'logoUrl': 'x'},
    }))
    storage = SlugStorage(str(path))
    assert storage.get('good123').server_dialect is ServerDialect.UNKNOWN
    assert storage.get('bad4567') is None


def test_no_temp_file_left_behind(storage, tmp_path):
    storage.create(PlayerConfig('http://a/'))
    assert sorted(p.name for p in (tmp_path / 'data').iterdir()) == ['slugs.json']


def test_failed_write_keeps_access_count(storage, mocker):
    slug = storage.create(PlayerConfig('http://a/'))
    mocker.patch('shoutstream.storage.slug_storage.os.replace', side_effect=OSError('disk full'))

    with pytest.raises(OSError):
        storage.increment_access_count(slug)

    assert storage.get(slug).access_count == 0
    assert SlugStorage(storage.file_path).get(slug).access_count == 0


def test_failed_write_removes_temp_file(storage, tmp_path, mocker):
    storage.create(PlayerConfig('http://a/'))
    mocker.patch('shoutstream.storage.slug_storage.json.dump', side_effect=OSError('disk full'))

    with pytest.raises(OSError):
        storage.set('bbbbbbb', PlayerConfig('http://b/'))

    assert sorted(p.name for p in (tmp_path / 'data').iterdir()) == ['slugs.json']
    assert not storage.exists('bbbbbbb')


def test_returned_configs_are_copies(storage):
    slug = storage.create(PlayerConfig('http://a/'))
    storage.get(slug).stream_url = 'http://changed/'
    storage.increment_access_count(slug).access_count = 99
    config = storage.get(slug)
    assert config.stream_url == 'http://a/'
    assert config.access_count == 1
