"""
模拟 HTTP 接口
对外暴露 1v1 / 团队战蒙特卡洛模拟，返回 camelCase JSON
"""

import logging

from fastapi import FastAPI, HTTPException
from pydantic import ValidationError

from ..loader import DuelScenario, TeamScenario
from ..simulation.runner import run_simulation_async, run_team_simulation

logger = logging.getLogger(__name__)

app = FastAPI(title="Battle Simulation API")


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/simulate")
async def simulate(req: DuelScenario):
    try:
        result = await run_simulation_async(
            req.unit1, req.unit2, req.skills1, req.skills2, req.options
        )
        return result.to_dict()
    except (ValidationError, ValueError) as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        logger.exception("模拟失败")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/simulate/team")
def simulate_team(req: TeamScenario):
    try:
        result = run_team_simulation(
            req.team1,
            req.team2,
            runs=req.runs,
            team_config=req.config,
            team1_skills=req.team1_skills,
            team2_skills=req.team2_skills,
            save_sample_battles=req.save_sample_battles,
            seed=req.seed,
            workers=req.workers,
        )
        return result.to_dict()
    except (ValidationError, ValueError) as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        logger.exception("团队战模拟失败")
        raise HTTPException(status_code=500, detail=str(e))


if __name__ == "__main__":
    import uvicorn  # type: ignore
    uvicorn.run(app, host="0.0.0.0", port=8000)
