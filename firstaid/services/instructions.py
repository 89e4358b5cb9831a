from typing import List

from firstaid.models.schemas import GuidanceResult, Priority


def cpr_instructions(ambulance: str = "108") -> List[str]:
    return [
        f"Call {ambulance} for ambulance IMMEDIATELY",
        "Check airway - tilt head back, lift chin",
        "Begin CPR if trained - 30 chest compressions",
        "Give 2 rescue breaths after compressions",
        "Continue CPR until help arrives",
    ]


def unconscious_instructions(ambulance: str = "108") -> List[str]:
    return [
        f"Call {ambulance} for ambulance immediately",
        "Place person in recovery position (on their side)",
        "Keep airway clear and monitor breathing",
        "Do NOT move them unless in danger",
        "Stay with them until help arrives",
    ]


def bleeding_instructions(ambulance: str = "108") -> List[str]:
    return [
        f"Call {ambulance} for ambulance",
        "Apply firm pressure to the wound with clean cloth",
        "Keep pressing - do not remove the cloth",
        "If blood soaks through, add more cloth on top",
        "Keep the injured area raised if possible",
    ]


def stable_instructions(ambulance: str = "108") -> List[str]:
    return [
        f"Call {ambulance} if medical help is needed",
        "Keep the person calm and still",
        "Do NOT move them unless in immediate danger",
        "Check for any other injuries",
        "Stay with them until help arrives",
    ]


def offline_guide(ambulance: str = "108", police: str = "112") -> GuidanceResult:
    """Standard guide shown before any question has been answered."""
    return GuidanceResult(
        instructions=[
            "Ensure the scene is safe before approaching the victim",
            f"Call emergency services ({ambulance} for ambulance, {police} for police) immediately",
            "If conscious, keep the victim calm and still - do not move them unless necessary",
            "Apply direct pressure to any visible bleeding using a clean cloth",
            "Keep the victim warm with a blanket or jacket",
            "Stay with the victim until help arrives and monitor their breathing",
        ],
        show_cpr=False,
        priority=Priority.URGENT,
    )
