from .machine import ClaimStateMachine, PolicyStateMachine, StateMachine

__all__ = ["ClaimStateMachine", "PolicyStateMachine", "StateMachine"]
