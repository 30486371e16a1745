# lifemate/services/email_templates.py
from dataclasses import dataclass
from html import escape

from lifemate.models.otp import OtpPurpose, policy_for


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str
    text: str


def _layout(heading: str, body: str) -> str:
    return f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <div style="background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); padding: 30px; text-align: center;">
    <h1 style="color: white; margin: 0; font-size: 28px;">LifeMate</h1>
    <p style="color: white; margin: 10px 0 0 0; font-size: 16px;">Healthcare Job Platform</p>
  </div>
  <div style="padding: 30px; background: #f8f9fa;">
    <h2 style="color: #333; margin-bottom: 20px;">{heading}</h2>
    {body}
  </div>
  <div style="background: #333; padding: 20px; text-align: center;">
    <p style="color: #999; margin: 0; font-size: 14px;">&copy; LifeMate. All rights reserved.</p>
    <p style="color: #999; margin: 5px 0 0 0; font-size: 12px;">This is an automated email. Please do not reply to this message.</p>
  </div>
</div>
"""


def _para(text: str, small: bool = False) -> str:
    size = " font-size: 14px;" if small else ""
    return f'<p style="color: #666; line-height: 1.6; margin-bottom: 20px;{size}">{text}</p>'


def _button(url: str, label: str, colour: str) -> str:
    return (
        '<div style="text-align: center; margin: 30px 0;">'
        f'<a href="{escape(url, quote=True)}" style="background: {colour}; color: white; padding: 12px 30px; '
        f'text-decoration: none; border-radius: 5px; font-weight: bold; display: inline-block;">{label}</a>'
        "</div>"
        + _para("If the button doesn't work, you can copy and paste this link into your browser:")
        + f'<p style="color: #667eea; word-break: break-all; background: #f0f0f0; padding: 10px;">{escape(url)}</p>'
    )


def verification_email(first_name: str, url: str) -> RenderedEmail:
    body = (
        _para(
            "Thank you for registering with LifeMate. To complete your registration, "
            "please verify your email address by clicking the button below."
        )
        + _button(url, "Verify Email Address", "#667eea")
        + _para(
            "This verification link will expire in 24 hours. If you didn't create an account "
            "with LifeMate, please ignore this email.",
            small=True,
        )
    )
    return RenderedEmail(
        subject="Verify Your Email Address - LifeMate",
        html=_layout(f"Welcome to LifeMate, {escape(first_name or 'User')}!", body),
        text=f"Verify your email address: {url}",
    )


def password_reset_email(first_name: str, url: str) -> RenderedEmail:
    body = (
        _para(f"Hello {escape(first_name or 'User')},")
        + _para(
            "We received a request to reset your password for your LifeMate account. "
            "If you made this request, click the button below to reset your password."
        )
        + _button(url, "Reset Password", "#dc3545")
        + _para(
            "This password reset link will expire in 1 hour. If you didn't request a password reset, "
            "please ignore this email and your password will remain unchanged.",
            small=True,
        )
    )
    return RenderedEmail(
        subject="Reset Your Password - LifeMate",
        html=_layout("Password Reset Request", body),
        text=f"Reset your password: {url}",
    )


def otp_email(first_name: str, code: str, purpose: OtpPurpose) -> RenderedEmail:
    policy = policy_for(purpose)
    minutes = int(policy.ttl.total_seconds() // 60)
    body = (
        _para(f"Hello {escape(first_name or 'User')},")
        + _para(escape(policy.email_description))
        + '<div style="margin: 24px 0; text-align: center;">'
        '<span style="display: inline-block; background: #ffffff; border: 1px solid #d1d5db; border-radius: 8px; '
        'letter-spacing: 8px; font-size: 28px; font-weight: 700; color: #111827; padding: 14px 24px;">'
        f"{code}</span></div>"
        + _para(
            f"This OTP will expire in {minutes} minutes. For security reasons, do not share this code with anyone.",
            small=True,
        )
    )
    return RenderedEmail(
        subject=f"{policy.email_title} - LifeMate",
        html=_layout(escape(policy.email_title), body),
        text=f"{policy.email_description} Your code is {code}. It expires in {minutes} minutes.",
    )


def welcome_email(first_name: str, role: str, dashboard_url: str) -> RenderedEmail:
    if role == "employer":
        intro = "Start posting jobs and connect with qualified healthcare professionals."
    else:
        intro = "Complete your profile and start exploring healthcare career opportunities."
    body = (
        _para(
            "Welcome to LifeMate, the platform connecting healthcare professionals "
            "with career opportunities!"
        )
        + _para(intro)
        + _button(dashboard_url, "Go to Dashboard", "#667eea")
    )
    return RenderedEmail(
        subject="Welcome to LifeMate - Your Healthcare Career Journey Starts Here!",
        html=_layout(f"Hello {escape(first_name or 'User')}!", body),
        text=f"Welcome to LifeMate! {intro} {dashboard_url}",
    )
