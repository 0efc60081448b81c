from supabase import create_client
from waffle_orders.config import settings
from waffle_orders.models.user import UserRole

STAFF_ROLES = (UserRole.ADMIN.value, UserRole.CHEF.value)

def create_staff_account(email: str, password: str, role: str, full_name: str = ""):
    """Create (or promote) a staff login: Supabase auth user plus profiles row"""
    if role not in STAFF_ROLES:
        raise ValueError(f"Role must be one of {STAFF_ROLES}")

    supabase_admin = create_client(
        settings.SUPABASE_URL,
        settings.SUPABASE_SERVICE_KEY
    )

    existing = supabase_admin.table("profiles").select("id").eq("email", email).limit(1).execute()
    if existing.data:
        supabase_admin.table("profiles").update({"role": role}).eq("id", existing.data[0]["id"]).execute()
        print(f"{email} already exists, role set to {role}")
        return

    auth_response = supabase_admin.auth.admin.create_user({
        "email": email,
        "password": password,
        "email_confirm": True,
        "user_metadata": {"full_name": full_name},
    })

    supabase_admin.table("profiles").upsert({
        "id": auth_response.user.id,
        "email": email,
        "full_name": full_name,
        "role": role,
    }).execute()
    print(f"{role.capitalize()} account created: {email}")

if __name__ == "__main__":
    email = input("Staff email: ")
    password = input("Password: ")
    role = input("Role (admin/chef) [admin]: ").strip() or UserRole.ADMIN.value
    full_name = input("Full name: ")
    create_staff_account(email, password, role, full_name)
