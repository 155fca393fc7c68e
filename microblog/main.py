import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from apkit.server.app import ActivityPubServer
from apkit.server.responses import ActivityResponse
from apkit.models import (
    Nodeinfo, NodeinfoSoftware,
    NodeinfoServices, NodeinfoUsage, NodeinfoUsageUsers,
)
from apkit.client import WebfingerResource, WebfingerResult, WebfingerLink

from microblog import database
from microblog.config import settings
from microblog.federation.handlers import register_handlers
from microblog.federation.uris import build_actor_uri, resolve_local_actor
from microblog.routes import build_routes

logging.basicConfig(level=logging.INFO)


@asynccontextmanager
async def lifespan(app):
    import microblog.database
    import workers.delivery_worker
    await microblog.database.init_db()
    worker_task = asyncio.create_task(workers.delivery_worker.run_worker())
    yield
    worker_task.cancel()


api = ActivityPubServer(lifespan=lifespan)
register_handlers(api)
api.inbox("/users/{identifier}/inbox")
api.inbox("/inbox")

for route in build_routes():
    api.add_api_route(route.path, route.endpoint, methods=list(route.methods))


@api.webfinger()
async def webfinger(request: Request, acct: WebfingerResource) -> Response:
    if acct.host == settings.domain:
        async with database.async_session_factory() as session:
            actor = await resolve_local_actor(session, acct.username)
        if actor is not None:
            link = WebfingerLink(
                rel="self",
                type="application/activity+json",
                href=build_actor_uri(acct.username),
            )
            result = WebfingerResult(subject=acct, links=[link])
            return JSONResponse(result.to_json(), media_type="application/jrd+json")
    return JSONResponse({"error": "Not found"}, status_code=404)


@api.nodeinfo("/nodeinfo/2.1", "2.1")
async def nodeinfo():
    return ActivityResponse(
        Nodeinfo(
            version="2.1",
            software=NodeinfoSoftware(
                name=settings.software_name, version=settings.software_version
            ),
            protocols=["activitypub"],
            services=NodeinfoServices(inbound=[], outbound=[]),
            openRegistrations=False,
            usage=NodeinfoUsage(users=NodeinfoUsageUsers(total=1)),
            metadata={},
        )
    )


@api.get("/health")
async def health():
    return {"status": "ok"}
