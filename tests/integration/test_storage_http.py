"""
Integration tests for the storage HTTP clients against a local aiohttp server
"""

import pytest
from aiohttp import test_utils, web

from pixelcrop.image_processing.core.artifacts import ExportArtifact, ExportFormat
from pixelcrop.storage.gateway import AssetPersistenceGateway, BlobUploader
from pixelcrop.storage.local import LocalStorageBackend
from pixelcrop.storage.models import NewImageAsset, PersistenceError, UploadFailed
from pixelcrop.storage.remote import RemoteStorageBackend


PNG_ARTIFACT = ExportArtifact(data=b"\x89PNG fake", format=ExportFormat.PNG, width=4, height=4)


def blob_app(received, status=200, reply=None, text=None):
    """Upload target that records each request and answers as configured"""
    async def upload(request):
        received.append({
            "token": request.match_info["token"],
            "content_type": request.headers.get("Content-Type"),
            "body": await request.read(),
        })
        if status >= 400:
            return web.Response(status=status, text="storage unavailable")
        if text is not None:
            return web.Response(text=text)
        return web.json_response({"storageId": "blob-1"} if reply is None else reply)

    app = web.Application()
    app.router.add_post("/upload/{token}", upload)
    return app


def function_app(calls, results):
    """Function API: ``results`` maps a function path to its reply or HTTP status"""
    async def invoke(request):
        body = await request.json()
        calls.append({"kind": request.match_info["kind"], "body": body})
        result = results[body["path"]]
        if isinstance(result, int):
            return web.Response(status=result, text="server error")
        if isinstance(result, str):
            return web.Response(text=result)
        return web.json_response(result)

    async def upload(request):
        calls.append({"kind": "upload", "content_type": request.headers.get("Content-Type")})
        return web.json_response({"storageId": "remote-blob"})

    app = web.Application()
    app.router.add_post("/api/{kind}", invoke)
    app.router.add_post("/upload", upload)
    return app


class TestBlobUploader:

    @pytest.mark.asyncio
    async def test_posts_bytes_with_content_type(self):
        received = []
        async with test_utils.TestServer(blob_app(received)) as server:
            async with BlobUploader() as uploader:
                storage_id = await uploader.upload(
                    str(server.make_url("/upload/t1")), b"jpeg bytes", "image/jpeg"
                )

        assert storage_id == "blob-1"
        assert received == [{"token": "t1", "content_type": "image/jpeg", "body": b"jpeg bytes"}]

    @pytest.mark.asyncio
    async def test_error_status_is_upload_failed(self):
        received = []
        async with test_utils.TestServer(blob_app(received, status=500)) as server:
            async with BlobUploader() as uploader:
                with pytest.raises(UploadFailed) as exc_info:
                    await uploader.upload(str(server.make_url("/upload/t1")), b"data", "image/png")

        assert "HTTP 500" in str(exc_info.value)
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_client_error_status(self):
        async with test_utils.TestServer(blob_app([], status=400)) as server:
            async with BlobUploader() as uploader:
                with pytest.raises(UploadFailed):
                    await uploader.upload(str(server.make_url("/upload/t1")), b"data", "image/png")

    @pytest.mark.asyncio
    async def test_reply_without_storage_id(self):
        async with test_utils.TestServer(blob_app([], reply={"id": "x"})) as server:
            async with BlobUploader() as uploader:
                with pytest.raises(UploadFailed) as exc_info:
                    await uploader.upload(str(server.make_url("/upload/t1")), b"data", "image/png")

        assert "storageId" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_non_json_reply(self):
        async with test_utils.TestServer(blob_app([], text="uploaded")) as server:
            async with BlobUploader() as uploader:
                with pytest.raises(UploadFailed):
                    await uploader.upload(str(server.make_url("/upload/t1")), b"data", "image/png")

    @pytest.mark.asyncio
    async def test_unreachable_target(self):
        server = test_utils.TestServer(blob_app([]))
        await server.start_server()
        url = str(server.make_url("/upload/t1"))
        await server.close()

        async with BlobUploader(timeout=5) as uploader:
            with pytest.raises(UploadFailed):
                await uploader.upload(url, b"data", "image/png")


class TestLocalUploadRoute:

    @pytest.mark.asyncio
    async def test_persist_over_http(self, tmp_path):
        async def accept(request):
            try:
                storage_id = await storage.accept_upload(
                    request.match_info["token"], await request.read(), request.headers["Content-Type"]
                )
            except UploadFailed as e:
                return web.json_response({"detail": str(e)}, status=400)
            return web.json_response({"storageId": storage_id})

        app = web.Application()
        app.router.add_post("/storage/upload/{token}", accept)

        async with test_utils.TestServer(app) as server:
            storage = LocalStorageBackend(str(tmp_path), str(server.make_url("/")))
            async with BlobUploader() as uploader:
                gateway = AssetPersistenceGateway(storage, uploader)
                asset_id = await gateway.persist(PNG_ARTIFACT, "photo.png", ExportFormat.PNG)

                # Upload tokens are single-use
                used_url = await storage.generate_upload_url()
                await uploader.upload(used_url, b"one", "image/png")
                with pytest.raises(UploadFailed) as exc_info:
                    await uploader.upload(used_url, b"two", "image/png")

        assert "HTTP 400" in str(exc_info.value)
        records = await storage.list_images()
        assert [r.id for r in records] == [asset_id]
        path, content_type = await storage.open_blob(records[0].storage_id)
        assert content_type == "image/png"
        assert path.read_bytes() == PNG_ARTIFACT.data


class TestRemoteFunctionCalls:

    @pytest.mark.asyncio
    async def test_request_body_and_unwrap(self):
        calls = []
        results = {
            "images:saveImage": {"status": "success", "value": "rec1"},
            "images:listImages": {"status": "success", "value": [
                {"_id": "rec1", "storageId": "s1", "name": "photo.png", "format": "png",
                 "url": "https://cdn.example/s1"},
            ]},
        }
        async with test_utils.TestServer(function_app(calls, results)) as server:
            async with RemoteStorageBackend(str(server.make_url("/"))) as remote:
                record_id = await remote.insert_image(NewImageAsset("s1", "photo.png", "png"))
                records = await remote.list_images()

        assert record_id == "rec1"
        assert calls[0] == {"kind": "mutation", "body": {
            "path": "images:saveImage",
            "args": {"storageId": "s1", "name": "photo.png", "format": "png"},
            "format": "json",
        }}
        assert calls[1] == {"kind": "query", "body": {
            "path": "images:listImages", "args": {}, "format": "json"
        }}
        assert records[0].url == "https://cdn.example/s1"

    @pytest.mark.asyncio
    async def test_error_reply(self):
        results = {"images:listImages": {"status": "error", "errorMessage": "Not authorized"}}
        async with test_utils.TestServer(function_app([], results)) as server:
            async with RemoteStorageBackend(str(server.make_url("/"))) as remote:
                with pytest.raises(PersistenceError) as exc_info:
                    await remote.list_images()

        assert "Not authorized" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        results = {"images:generateUploadUrl": 503}
        async with test_utils.TestServer(function_app([], results)) as server:
            async with RemoteStorageBackend(str(server.make_url("/"))) as remote:
                with pytest.raises(UploadFailed) as exc_info:
                    await remote.generate_upload_url()

        assert "HTTP 503" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_non_json_reply(self):
        results = {"images:listImages": "<html>gateway timeout</html>"}
        async with test_utils.TestServer(function_app([], results)) as server:
            async with RemoteStorageBackend(str(server.make_url("/"))) as remote:
                with pytest.raises(PersistenceError):
                    await remote.list_images()

    @pytest.mark.asyncio
    async def test_persist_and_list(self):
        calls = []
        results = {
            "images:saveImage": {"status": "success", "value": "rec1"},
            "images:listImages": {"status": "success", "value": [
                {"_id": "rec1", "storageId": "remote-blob", "name": "photo.png", "format": "png",
                 "url": "https://cdn.example/remote-blob"},
            ]},
        }
        app = function_app(calls, results)

        async with test_utils.TestServer(app) as server:
            results["images:generateUploadUrl"] = {
                "status": "success", "value": str(server.make_url("/upload"))
            }
            async with RemoteStorageBackend(str(server.make_url("/"))) as remote:
                async with BlobUploader() as uploader:
                    gateway = AssetPersistenceGateway(remote, uploader)
                    asset_id = await gateway.persist(PNG_ARTIFACT, "photo.png", ExportFormat.PNG)
                    listed = await gateway.list()

        assert asset_id == "rec1"
        assert [call["kind"] for call in calls] == ["mutation", "upload", "mutation", "query"]
        assert calls[1]["content_type"] == "image/png"
        assert calls[2]["body"]["args"] == {"storageId": "remote-blob", "name": "photo.png", "format": "png"}
        assert listed[0].url == "https://cdn.example/remote-blob"
