from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from app.core.errors import StorageError
from app.schemas import (
    FitnessEntryIn,
    FitnessEntryOut,
    FitnessEntryUpdate,
    FitnessGoalIn,
    FitnessGoalOut,
    FitnessGoalUpdate,
    WorkoutPlanIn,
    WorkoutPlanOut,
    WorkoutPlanUpdate,
)
from app.services.storage import storage


router = APIRouter(prefix="/api/fitness", tags=["fitness"])


def _not_found(kind: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"{kind} not found")


# Goals

@router.get("/goals", response_model=list[FitnessGoalOut])
def list_goals(user_id: int = Query(...)) -> list[FitnessGoalOut]:
    return [FitnessGoalOut.model_validate(g) for g in storage.get_fitness_goals(user_id)]


@router.post("/goals", response_model=FitnessGoalOut, status_code=status.HTTP_201_CREATED)
def create_goal(body: FitnessGoalIn) -> FitnessGoalOut:
    try:
        goal = storage.create_fitness_goal(**body.model_dump())
    except StorageError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return FitnessGoalOut.model_validate(goal)


@router.get("/goals/{goal_id}", response_model=FitnessGoalOut)
def get_goal(goal_id: int) -> FitnessGoalOut:
    goal = storage.get_fitness_goal(goal_id)
    if goal is None:
        raise _not_found("Fitness goal")
    return FitnessGoalOut.model_validate(goal)


@router.patch("/goals/{goal_id}", response_model=FitnessGoalOut)
def update_goal(goal_id: int, body: FitnessGoalUpdate) -> FitnessGoalOut:
    try:
        goal = storage.update_fitness_goal(goal_id, **body.model_dump(exclude_unset=True))
    except StorageError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if goal is None:
        raise _not_found("Fitness goal")
    return FitnessGoalOut.model_validate(goal)


@router.delete("/goals/{goal_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_goal(goal_id: int) -> None:
    if not storage.delete_fitness_goal(goal_id):
        raise _not_found("Fitness goal")


# Entries

@router.get("/entries", response_model=list[FitnessEntryOut])
def list_entries(
    user_id: int = Query(...),
    goal_id: Optional[int] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
) -> list[FitnessEntryOut]:
    entries = storage.get_fitness_entries(user_id, goal_id=goal_id, start_date=start_date, end_date=end_date)
    return [FitnessEntryOut.model_validate(e) for e in entries]


@router.post("/entries", response_model=FitnessEntryOut, status_code=status.HTTP_201_CREATED)
def create_entry(body: FitnessEntryIn) -> FitnessEntryOut:
    try:
        entry = storage.create_fitness_entry(**body.model_dump())
    except StorageError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return FitnessEntryOut.model_validate(entry)


@router.patch("/entries/{entry_id}", response_model=FitnessEntryOut)
def update_entry(entry_id: int, body: FitnessEntryUpdate) -> FitnessEntryOut:
    try:
        entry = storage.update_fitness_entry(entry_id, **body.model_dump(exclude_unset=True))
    except StorageError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if entry is None:
        raise _not_found("Fitness entry")
    return FitnessEntryOut.model_validate(entry)


@router.delete("/entries/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_entry(entry_id: int) -> None:
    if not storage.delete_fitness_entry(entry_id):
        raise _not_found("Fitness entry")


# Workout plans

@router.get("/plans/public", response_model=list[WorkoutPlanOut])
def list_public_plans() -> list[WorkoutPlanOut]:
    return [WorkoutPlanOut.model_validate(p) for p in storage.get_public_workout_plans()]


@router.get("/plans", response_model=list[WorkoutPlanOut])
def list_plans(user_id: int = Query(...)) -> list[WorkoutPlanOut]:
    return [WorkoutPlanOut.model_validate(p) for p in storage.get_workout_plans(user_id)]


@router.post("/plans", response_model=WorkoutPlanOut, status_code=status.HTTP_201_CREATED)
def create_plan(body: WorkoutPlanIn) -> WorkoutPlanOut:
    try:
        plan = storage.create_workout_plan(**body.model_dump())
    except StorageError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return WorkoutPlanOut.model_validate(plan)


@router.get("/plans/{plan_id}", response_model=WorkoutPlanOut)
def get_plan(plan_id: int) -> WorkoutPlanOut:
    plan = storage.get_workout_plan(plan_id)
    if plan is None:
        raise _not_found("Workout plan")
    return WorkoutPlanOut.model_validate(plan)


@router.patch("/plans/{plan_id}", response_model=WorkoutPlanOut)
def update_plan(plan_id: int, body: WorkoutPlanUpdate) -> WorkoutPlanOut:
    try:
        plan = storage.update_workout_plan(plan_id, **body.model_dump(exclude_unset=True))
    except StorageError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if plan is None:
        raise _not_found("Workout plan")
    return WorkoutPlanOut.model_validate(plan)


@router.delete("/plans/{plan_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_plan(plan_id: int) -> None:
    if not storage.delete_workout_plan(plan_id):
        raise _not_found("Workout plan")
