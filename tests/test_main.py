import pytest

from attendance_recognition.main import parse_args, run_command
from attendance_recognition.recognition.identity_index import IdentityIndex


@pytest.fixture
def store(tmp_path, monkeypatch):
    path = tmp_path / 'faces.csv'
    path.write_text('Alice,1,0,0,0\nBob,0,1,0,0\n')
    monkeypatch.setenv('EMBEDDING_DIM', '4')
    monkeypatch.setenv('STORE_FILE', str(path))
    return path


def names(path):
    index = IdentityIndex(dimension=4, capacity=4)
    index.load(str(path))
    return [name for _, name in index.list_identities()]


def test_list(store, capsys):
    assert run_command(parse_args(['--store-file', str(store), 'list'])) == 0
    out = capsys.readouterr().out
    assert '1\tAlice' in out
    assert '2\tBob' in out


def test_rename_and_delete(store, capsys):
    assert run_command(parse_args(['--store-file', str(store), 'rename', '2', 'Robert'])) == 0
    assert names(store) == ['Alice', 'Robert']

    assert run_command(parse_args(['--store-file', str(store), 'delete', '1'])) == 0
    assert names(store) == ['Robert']


def test_unknown_label_fails(store, capsys):
    assert run_command(parse_args(['--store-file', str(store), 'delete', '9'])) == 1
    assert 'Unknown identity 9' in capsys.readouterr().err


def test_command_is_required():
    with pytest.raises(SystemExit):
        parse_args([])
