"""
Tests for the version module of the ZKP2P SDK.
"""
import importlib
import re
from importlib import metadata as importlib_metadata
from unittest.mock import mock_open, patch

from zkp2p_sdk import __version__


def test_version_format():
    """Test that the version string follows semantic versioning"""
    assert re.match(r'^\d+\.\d+\.\d+$', __version__), "Version should follow semantic versioning"


@patch('importlib.metadata.version')
def test_version_from_metadata(mock_metadata_version):
    """When metadata lookup succeeds, version comes from metadata"""
    mock_metadata_version.return_value = "2.3.4"
    import zkp2p_sdk.version as vmod
    importlib.reload(vmod)
    assert vmod.__version__ == "2.3.4"


@patch('importlib.metadata.version')
@patch('builtins.open', new_callable=mock_open, read_data=b'[project]\nversion = "1.2.3"\n')
def test_version_from_pyproject(mock_open_file, mock_metadata_version):
    """When metadata lookup fails, pyproject.toml is read"""
    mock_metadata_version.side_effect = importlib_metadata.PackageNotFoundError
    import zkp2p_sdk.version as vmod
    importlib.reload(vmod)
    assert vmod.__version__ == "1.2.3"


@patch('importlib.metadata.version')
@patch('builtins.open', side_effect=FileNotFoundError)
def test_version_file_not_found(mock_open_file, mock_metadata_version):
    """If pyproject.toml is missing, fallback to default"""
    mock_metadata_version.side_effect = importlib_metadata.PackageNotFoundError
    import zkp2p_sdk.version as vmod
    importlib.reload(vmod)
    assert vmod.__version__ == "0.3.0"


@patch('importlib.metadata.version')
@patch('builtins.open', new_callable=mock_open, read_data=b'[tool.other]\nname = "x"\n')
def test_version_missing_key(mock_open_file, mock_metadata_version):
    mock_metadata_version.side_effect = importlib_metadata.PackageNotFoundError
    import zkp2p_sdk.version as vmod
    importlib.reload(vmod)
    assert vmod.__version__ == "0.3.0"


@patch('builtins.open', new_callable=mock_open, read_data=b'[project\nversion = ')
def test_version_unparseable_pyproject(mock_open_file):
    from zkp2p_sdk.version import FALLBACK_VERSION, _pyproject_version
    assert _pyproject_version() == FALLBACK_VERSION


def test_get_version_prefers_metadata():
    from zkp2p_sdk.version import get_version
    with patch('importlib.metadata.version', return_value="9.9.9") as mock_version:
        assert get_version() == "9.9.9"
    mock_version.assert_called_once_with("zkp2p-sdk")
