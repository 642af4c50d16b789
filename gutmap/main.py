from fastapi import FastAPI

from gutmap import __version__
from gutmap.api import experiments, insights, milestones

app = FastAPI(title="Gutmap", version=__version__)


# Include routers
app.include_router(insights.router)
app.include_router(milestones.router)
app.include_router(experiments.router)


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
