"""
Biometric calculations: BMI, BMR (Mifflin-St Jeor), TDEE and daily targets.

All functions are pure. Values are left unrounded; callers round for display.
"""
from __future__ import annotations
from typing import Dict, Tuple

from .schemas import ActivityLevel, DailyTargets, Gender, HealthGoal

ACTIVITY_MULTIPLIERS: Dict[ActivityLevel, float] = {
    ActivityLevel.SEDENTARY: 1.2,
    ActivityLevel.LIGHTLY_ACTIVE: 1.375,
    ActivityLevel.MODERATELY_ACTIVE: 1.55,
    ActivityLevel.VERY_ACTIVE: 1.725,
    ActivityLevel.EXTRA_ACTIVE: 1.9,
}

GOAL_ADJUSTMENTS: Dict[HealthGoal, float] = {
    HealthGoal.LOSE_WEIGHT: -500.0,
    HealthGoal.MAINTAIN_WEIGHT: 0.0,
    HealthGoal.GAIN_WEIGHT: 300.0,
    HealthGoal.BUILD_MUSCLE: 500.0,
}

# (protein, carbs, fat) share of daily calories
MACRO_SPLITS: Dict[HealthGoal, Tuple[float, float, float]] = {
    HealthGoal.LOSE_WEIGHT: (0.30, 0.40, 0.30),
    HealthGoal.BUILD_MUSCLE: (0.35, 0.40, 0.25),
}
DEFAULT_MACRO_SPLIT: Tuple[float, float, float] = (0.25, 0.45, 0.30)

MIN_DAILY_CALORIES = 1200.0
KCAL_PER_G_PROTEIN = 4.0
KCAL_PER_G_CARBS = 4.0
KCAL_PER_G_FAT = 9.0


def calc_bmi(weight_kg: float, height_cm: float) -> float:
    h_m = float(height_cm) / 100.0
    return float(weight_kg) / (h_m * h_m)


def bmi_category(bmi: float) -> str:
    if bmi < 18.5:
        return "Underweight"
    if bmi < 25:
        return "Normal"
    if bmi < 30:
        return "Overweight"
    return "Obese"


def calc_bmr(weight_kg: float, height_cm: float, age: int, gender: Gender) -> float:
    base = 10.0 * float(weight_kg) + 6.25 * float(height_cm) - 5.0 * int(age)
    if gender == Gender.MALE:
        return base + 5.0
    return base - 161.0


def calc_tdee(bmr: float, activity_level: ActivityLevel) -> float:
    return bmr * ACTIVITY_MULTIPLIERS[activity_level]


def calc_daily_calories(tdee: float, goal: HealthGoal) -> float:
    """Goal-adjusted daily calories, never below the 1200 kcal safety floor."""
    return max(tdee + GOAL_ADJUSTMENTS[goal], MIN_DAILY_CALORIES)


def calc_macros(daily_calories: float, goal: HealthGoal) -> Tuple[float, float, float]:
    """Return (protein_g, carbs_g, fat_g) for the goal's macro split."""
    protein_pct, carbs_pct, fat_pct = MACRO_SPLITS.get(goal, DEFAULT_MACRO_SPLIT)
    return (
        daily_calories * protein_pct / KCAL_PER_G_PROTEIN,
        daily_calories * carbs_pct / KCAL_PER_G_CARBS,
        daily_calories * fat_pct / KCAL_PER_G_FAT,
    )


def compute_targets(
    weight_kg: float,
    height_cm: float,
    age: int,
    gender: Gender,
    activity_level: ActivityLevel,
    goal: HealthGoal,
) -> Dict[str, float | str]:
    """Every derived field of a health profile in one pass."""
    bmi = calc_bmi(weight_kg, height_cm)
    bmr = calc_bmr(weight_kg, height_cm, age, gender)
    tdee = calc_tdee(bmr, activity_level)
    calories = calc_daily_calories(tdee, goal)
    protein_g, carbs_g, fat_g = calc_macros(calories, goal)
    return {
        "bmi": bmi,
        "bmi_category": bmi_category(bmi),
        "bmr": bmr,
        "tdee": tdee,
        "daily_calories": calories,
        "daily_protein_g": protein_g,
        "daily_carbs_g": carbs_g,
        "daily_fat_g": fat_g,
    }


def targets_from_profile(profile) -> DailyTargets:
    return DailyTargets(
        calories=profile.daily_calories,
        protein_g=profile.daily_protein_g,
        carbs_g=profile.daily_carbs_g,
        fat_g=profile.daily_fat_g,
    )
