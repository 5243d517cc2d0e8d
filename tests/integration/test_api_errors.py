"""Integration tests for API error responses."""
import json
import os
import stat

import pytest


def _get_token(client):
    response = client.get('/api', query_string={"action": "token"})
    assert response.status_code == 200
    return response.get_json()["token"]


class TestDispatch:
    """Tests for action routing."""

    def test_unknown_action_returns_error_code(self, client):
        """Should return 400 with UNKNOWN_ACTION code."""
        response = client.get('/api', query_string={"action": "format"})

        assert response.status_code == 400
        data = response.get_json()
        assert data['error'] == 'Unknown action'
        assert data.get('code') == 'UNKNOWN_ACTION'

    def test_missing_action_returns_error_code(self, client):
        """Should treat a missing action as unknown."""
        response = client.get('/api')

        assert response.status_code == 400
        assert response.get_json().get('code') == 'UNKNOWN_ACTION'

    def test_cgi_path_alias(self, client):
        """Should serve the same API under the legacy CGI path."""
        response = client.get('/cgi-bin/api.sh', query_string={"action": "stop"})

        assert response.status_code == 200
        assert response.get_json() == {"status": "not_running"}

    def test_health(self, client):
        """Should report uptime and no active job."""
        response = client.get('/health')

        assert response.status_code == 200
        data = response.get_json()
        assert data["ok"] is True
        assert data["job"] is None


class TestOriginChecks:
    """Tests for cross-origin protection."""

    def test_foreign_origin_rejected(self, client):
        """Should return 403 with ORIGIN_MISMATCH code."""
        response = client.get('/api',
                              query_string={"action": "token"},
                              headers={"Origin": "https://evil.example"})

        assert response.status_code == 403
        data = response.get_json()
        assert data.get('code') == 'ORIGIN_MISMATCH'
        assert 'token' not in data

    def test_same_origin_allowed(self, client):
        """Should allow requests whose Origin matches the Host."""
        response = client.get('/api',
                              query_string={"action": "token"},
                              headers={"Origin": "http://localhost"})

        assert response.status_code == 200

    def test_foreign_referer_rejected(self, client):
        """Should return 403 with REFERER_MISMATCH code."""
        response = client.post('/api',
                               data={"action": "stop"},
                               headers={"Referer": "https://evil.example/page"})

        assert response.status_code == 403
        assert response.get_json().get('code') == 'REFERER_MISMATCH'

    def test_list_ignores_origin(self, client):
        """Should not origin-check the read-only catalog query."""
        response = client.get('/api',
                              query_string={"action": "list"},
                              headers={"Origin": "https://evil.example"})

        assert response.status_code != 403


class TestRunValidation:
    """Tests for run action validation."""

    def test_missing_token_returns_error_code(self, client, make_payload):
        """Should return 403 with INVALID_TOKEN code."""
        path = make_payload("demo", "echo hi")
        response = client.get('/api', query_string={"action": "run", "path": path})

        assert response.status_code == 403
        assert response.get_json().get('code') == 'INVALID_TOKEN'

    def test_token_is_single_use(self, client, make_payload):
        """Should refuse a token the second time it is presented."""
        path = make_payload("demo", "echo hi")
        token = _get_token(client)
        first = client.get('/api', query_string={"action": "run", "path": path, "token": token})
        assert first.status_code == 200
        first.get_data()

        second = client.get('/api', query_string={"action": "run", "path": path, "token": token})
        assert second.status_code == 403
        assert second.get_json().get('code') == 'INVALID_TOKEN'

    def test_traversal_returns_error_code(self, client, payload_root):
        """Should return 400 with PATH_REJECTED code."""
        token = _get_token(client)
        response = client.get('/api', query_string={
            "action": "run",
            "path": payload_root + "/../../etc/passwd/payload.sh",
            "token": token,
        })

        assert response.status_code == 400
        data = response.get_json()
        assert data.get('code') == 'PATH_REJECTED'
        assert 'traversal' in data['error'].lower()

    def test_outside_root_returns_error_code(self, client):
        """Should reject payloads outside the root."""
        token = _get_token(client)
        response = client.get('/api', query_string={"action": "run", "path": "/tmp/payload.sh", "token": token})

        assert response.status_code == 400
        assert response.get_json()['error'] == 'Invalid path'

    def test_wrong_filename_returns_error_code(self, client, payload_root):
        """Should reject non-entry scripts."""
        token = _get_token(client)
        response = client.get('/api', query_string={"action": "run", "path": payload_root + "/x/run.sh", "token": token})

        assert response.status_code == 400
        assert response.get_json()['error'] == 'Invalid payload file'

    def test_missing_payload_returns_404(self, client, payload_root):
        """Should return 404 with PAYLOAD_NOT_FOUND code."""
        token = _get_token(client)
        response = client.get('/api', query_string={
            "action": "run",
            "path": payload_root + "/ghost/payload.sh",
            "token": token,
        })

        assert response.status_code == 404
        assert response.get_json().get('code') == 'PAYLOAD_NOT_FOUND'


class TestRespondAndStop:
    """Tests for respond and stop actions."""

    def test_invalid_characters_rejected(self, client):
        """Should return 400 with INVALID_RESPONSE code."""
        response = client.post('/api', data={"action": "respond", "response": "1; rm -rf /"})

        assert response.status_code == 400
        data = response.get_json()
        assert data.get('code') == 'INVALID_RESPONSE'
        assert 'invalid characters' in data['error'].lower()

    def test_too_long_rejected(self, client):
        """Should reject answers over 256 characters."""
        response = client.post('/api', data={"action": "respond", "response": "a" * 257})

        assert response.status_code == 400
        assert 'too long' in response.get_json()['error'].lower()

    def test_respond_without_job(self, client):
        """Should report not_running as a normal status."""
        response = client.post('/api', data={"action": "respond", "response": "1"})

        assert response.status_code == 200
        assert response.get_json() == {"status": "not_running"}

    def test_stop_without_job(self, client):
        """Should report not_running as a normal status."""
        response = client.post('/api', data={"action": "stop"})

        assert response.status_code == 200
        assert response.get_json() == {"status": "not_running"}

    def test_json_body_accepted(self, client):
        """Should read parameters from a JSON body too."""
        response = client.post('/api', json={"action": "respond", "response": "$(id)"})

        assert response.status_code == 400


class TestCatalog:
    """Tests for list and refresh actions."""

    def test_list_without_cache(self, client, catalog_files):
        """Should return 503 with CACHE_NOT_READY code."""
        response = client.get('/api', query_string={"action": "list"})

        assert response.status_code == 503
        data = response.get_json()
        assert data['error'] == 'Cache not ready. Refresh page.'
        assert data.get('code') == 'CACHE_NOT_READY'

    def test_list_serves_cache(self, client, catalog_files):
        """Should serve the cached document as-is."""
        cache, _ = catalog_files
        catalog = {"recon": [{"name": "Scan", "path": "/root/payloads/user/recon/scan/payload.sh"}]}
        with open(cache, "w", encoding="utf-8") as fh:
            json.dump(catalog, fh)

        response = client.get('/api', query_string={"action": "list"})

        assert response.status_code == 200
        assert response.mimetype == "application/json"
        assert response.get_json() == catalog

    def test_refresh_without_builder(self, client, catalog_files):
        """Should return 500 with CATALOG_REFRESH_FAILED code."""
        response = client.post('/api', data={"action": "refresh"})

        assert response.status_code == 500
        assert response.get_json().get('code') == 'CATALOG_REFRESH_FAILED'

    def test_refresh_runs_builder(self, client, catalog_files):
        """Should run the builder, after which list serves its output."""
        cache, builder = catalog_files
        with open(builder, "w", encoding="utf-8") as fh:
            fh.write("#!/bin/sh\n")
            fh.write(f"echo '{{\"general\": []}}' > '{cache}'\n")
        os.chmod(builder, os.stat(builder).st_mode | stat.S_IXUSR)

        response = client.post('/api', data={"action": "refresh"})
        assert response.status_code == 200
        assert response.get_json() == {"status": "refreshed"}

        listed = client.get('/api', query_string={"action": "list"})
        assert listed.get_json() == {"general": []}

    def test_failing_builder(self, client, catalog_files):
        """Should report a builder that exits nonzero."""
        _, builder = catalog_files
        with open(builder, "w", encoding="utf-8") as fh:
            fh.write("#!/bin/sh\nexit 2\n")
        os.chmod(builder, os.stat(builder).st_mode | stat.S_IXUSR)

        response = client.post('/api', data={"action": "refresh"})
        assert response.status_code == 500
        assert response.get_json()['error'] == 'Catalog refresh failed'
