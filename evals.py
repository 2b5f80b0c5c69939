#!/usr/bin/env python3
"""
Evals for Generated Workouts
Lightweight evaluation framework for checking plan quality after generation
"""

import logging
from typing import Any, Dict, Optional

from models import ExerciseStep, GenerationRequest, WorkoutPlan

logger = logging.getLogger(__name__)

# Rough time for one set of a rep-based exercise
SECONDS_PER_SET = 40


def eval_plan_structure(plan: WorkoutPlan) -> Dict[str, Any]:
    """
    Evaluate if the plan has the expected shape:
    - Has a warm-up
    - Has a main block
    - Has a cool-down
    - Every main exercise says how much to do (sets+reps or a duration)
    """
    results = {
        'passed': True,
        'issues': [],
        'score': 0,
        'max_score': 4
    }

    for section in ('warmup', 'main', 'cooldown'):
        if getattr(plan, section):
            results['score'] += 1
        else:
            results['issues'].append(f"No {section} exercises")
            results['passed'] = False

    missing = [step.name for step in plan.main if not step.has_volume]
    if missing:
        results['issues'].append(f"Main exercises without sets/reps or duration: {', '.join(missing)}")
        results['passed'] = False
    else:
        results['score'] += 1

    results['score_pct'] = (results['score'] / results['max_score']) * 100
    return results


def eval_plan_instructions(plan: WorkoutPlan) -> Dict[str, Any]:
    """
    Evaluate instruction coverage - every exercise should explain how to do it
    """
    steps = plan.steps
    described = [step for step in steps if step.instructions.strip()]
    results = {
        'passed': len(described) == len(steps),
        'issues': [],
        'score': len(described),
        'max_score': len(steps)
    }
    for step in steps:
        if not step.instructions.strip():
            results['issues'].append(f"No instructions for {step.name}")

    results['score_pct'] = (results['score'] / results['max_score']) * 100 if steps else 0
    return results


def estimate_step_seconds(step: ExerciseStep) -> int:
    rounds = step.sets or 1
    if step.duration_seconds is not None:
        work = step.duration_seconds
    elif step.reps is not None:
        work = SECONDS_PER_SET
    else:
        work = 0
    rest = (step.rest_seconds or 0) * max(rounds - 1, 0)
    return rounds * work + rest


def eval_plan_duration(plan: WorkoutPlan, target_minutes: Optional[int] = None) -> Dict[str, Any]:
    """
    Evaluate if the exercises roughly fill the requested time
    """
    target = target_minutes or plan.duration_minutes
    estimated = sum(estimate_step_seconds(step) for step in plan.steps) / 60
    results = {
        'passed': True,
        'issues': [],
        'target_minutes': target,
        'estimated_minutes': round(estimated, 1),
        'score': 0,
        'max_score': 3
    }

    if not target:
        results['issues'].append("No target duration to compare against")
        results['score_pct'] = 0
        results['passed'] = False
        return results

    # Score by how far the estimate is from the target
    off_by = abs(estimated - target) / target
    if off_by <= 0.25:
        results['score'] = 3
    elif off_by <= 0.5:
        results['score'] = 2
    elif off_by <= 1.0:
        results['score'] = 1
    else:
        results['passed'] = False

    if off_by > 0.25:
        results['issues'].append(f"Exercises add up to ~{estimated:.0f} min (target {target} min)")

    results['score_pct'] = (results['score'] / results['max_score']) * 100
    return results


def run_evals(plan: WorkoutPlan, request: Optional[GenerationRequest] = None) -> Dict[str, Any]:
    """
    Run all evals on a generated plan and return results
    """
    target = request.duration_minutes if request else None
    results = {
        'structure': eval_plan_structure(plan),
        'instructions': eval_plan_instructions(plan),
        'duration': eval_plan_duration(plan, target),
        'overall_score': 0,
        'overall_passed': False
    }

    structure_weight = 0.4
    instructions_weight = 0.3
    duration_weight = 0.3

    results['overall_score'] = (
        results['structure']['score_pct'] * structure_weight +
        results['instructions']['score_pct'] * instructions_weight +
        results['duration']['score_pct'] * duration_weight
    )

    # A plan missing a section never passes, whatever the other scores
    results['overall_passed'] = results['overall_score'] >= 70 and results['structure']['passed']
    return results


def log_eval_results(results: Dict[str, Any]):
    """
    Log eval results, one line per check
    """
    for name in ('structure', 'instructions', 'duration'):
        check = results[name]
        logger.info("Eval %s: %s/%s (%.0f%%)", name, check['score'], check['max_score'], check['score_pct'])
        for issue in check['issues']:
            logger.info("  - %s", issue)

    logger.info("Eval overall: %.1f%% %s", results['overall_score'],
                'PASSED' if results['overall_passed'] else 'FAILED')


if __name__ == '__main__':
    # Example usage
    logging.basicConfig(level=logging.INFO, format='%(message)s')
    sample_plan = WorkoutPlan.model_validate({
        'name': 'Quick Leg Day',
        'warmup': [{'name': 'Jumping Jacks', 'durationSeconds': 60, 'instructions': 'Light pace'}],
        'main': [
            {'name': 'Bodyweight Squats', 'sets': 3, 'reps': 15, 'restSeconds': 60, 'instructions': 'Sit back'},
            {'name': 'Walking Lunges', 'sets': 3, 'reps': 12, 'restSeconds': 60, 'instructions': 'Long steps'},
        ],
        'cooldown': [{'name': 'Quad Stretch', 'durationSeconds': 60, 'instructions': 'Hold each side'}],
    })
    log_eval_results(run_evals(sample_plan, GenerationRequest(duration=15)))
