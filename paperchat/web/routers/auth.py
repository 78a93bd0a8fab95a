"""Auth routes: signup, login, logout, current session."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from paperchat.models.chat import User
from paperchat.web.state import SESSION_COOKIE, AppState, current_user, get_state, session_token

router = APIRouter(prefix="/api/auth")


class SignupPayload(BaseModel):
    """Request body for creating an account."""
    name: str = ""
    email: str = ""
    password: str = ""


class LoginPayload(BaseModel):
    """Request body for signing in."""
    email: str = ""
    password: str = ""


@router.post("/signup")
async def signup(body: SignupPayload, state: AppState = Depends(get_state)):
    """Create an account; 400 if the email is taken or a field is missing."""
    state.auth.signup(body.name, body.email, body.password)
    return JSONResponse({"message": "User created successfully"}, status_code=201)


@router.post("/login")
async def login(body: LoginPayload, state: AppState = Depends(get_state)):
    """Open a session and return its token (also set as a cookie)."""
    user, token = state.auth.login(body.email, body.password)
    response = JSONResponse({"token": token, "user": user.to_dict()})
    response.set_cookie(
        SESSION_COOKIE,
        token,
        httponly=True,
        samesite="lax",
        max_age=state.settings.session_days * 24 * 3600,
    )
    return response


@router.post("/logout")
async def logout(request: Request, state: AppState = Depends(get_state)):
    """Drop the caller's session."""
    state.auth.logout(session_token(request))
    response = JSONResponse({"success": True})
    response.delete_cookie(SESSION_COOKIE)
    return response


@router.get("/session")
async def get_session(user: User = Depends(current_user)):
    """Return the signed-in user."""
    return JSONResponse({"user": user.to_dict()})
