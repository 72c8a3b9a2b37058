"""
Integration tests for invoice upload and download.
"""

import pytest

from backend.app.models.enums import UserRole


@pytest.fixture
async def owner_headers(make_member, headers_for):
    owner = await make_member("02keyperson", UserRole.KEY_PERSON)
    return headers_for(owner)


async def upload(client, headers, content=b"%PDF-1.4 invoice", retention=None):
    data = {} if retention is None else {"retention_minutes": str(retention)}
    return await client.post(
        "/api/invoices",
        files={"file": ("invoice-12.pdf", content, "application/pdf")},
        data=data,
        headers=headers,
    )


@pytest.mark.asyncio
async def test_upload_and_download(client, owner_headers, blob_store):
    response = await upload(client, owner_headers, retention=1440)

    assert response.status_code == 201
    invoice = response.json()
    assert invoice["filename"] == "invoice-12.pdf"
    assert invoice["retention_minutes"] == 1440
    assert invoice["size_bytes"] == len(b"%PDF-1.4 invoice")
    assert invoice["uploaded_by"] == "02keyperson"

    listing = (await client.get("/api/invoices", headers=owner_headers)).json()
    assert [i["uhrp_hash"] for i in listing] == [invoice["uhrp_hash"]]

    response = await client.get(
        "/api/invoices/download", params={"url": f"uhrp://{invoice['uhrp_hash']}"}, headers=owner_headers
    )
    assert response.status_code == 200
    assert response.content == b"%PDF-1.4 invoice"
    assert response.headers["content-type"].startswith("application/pdf")


@pytest.mark.asyncio
async def test_default_retention(client, owner_headers):
    response = await upload(client, owner_headers)
    assert response.json()["retention_minutes"] == 180


@pytest.mark.asyncio
async def test_unsupported_retention_rejected(client, owner_headers):
    response = await upload(client, owner_headers, retention=60)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_empty_file_rejected(client, owner_headers):
    response = await upload(client, owner_headers, content=b"")
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_blob_store_outage(client, owner_headers, blob_store):
    blob_store.fail = True

    response = await upload(client, owner_headers)

    assert response.status_code == 502
    assert (await client.get("/api/invoices", headers=owner_headers)).json() == []


@pytest.mark.asyncio
async def test_download_unknown_content(client, owner_headers):
    response = await client.get("/api/invoices/download", params={"url": "uhrp://missing"}, headers=owner_headers)
    assert response.status_code == 502
